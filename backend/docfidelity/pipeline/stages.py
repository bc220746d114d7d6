"""
批量生成阶段定义

阶段顺序：准备取值 → 分批渲染 → 打包归档
进度只在“分批渲染”阶段每批结束时推进
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StageEnum(str, Enum):
    """批量生成阶段枚举"""
    PREPARE_ROWS = "PREPARE_ROWS"
    RENDER_BATCHES = "RENDER_BATCHES"
    PACKAGE_ZIP = "PACKAGE_ZIP"


@dataclass(frozen=True)
class PipelineStage:
    """流水线阶段"""
    name: StageEnum
    description: str


BULK_STAGES: list[PipelineStage] = [
    PipelineStage(StageEnum.PREPARE_ROWS, "按映射构造每行取值"),
    PipelineStage(StageEnum.RENDER_BATCHES, "分批渲染文档"),
    PipelineStage(StageEnum.PACKAGE_ZIP, "打包归档"),
]
