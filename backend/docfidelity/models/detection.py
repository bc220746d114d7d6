"""
检测与栅格化结果模型
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .template import TemplateField


class DetectionResult(BaseModel):
    """字段检测结果（已在网关边界完成类型收敛）"""
    suggested_title: str = "Untitled"
    fields: list[TemplateField] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list, description="被丢弃/修正的字段说明")


class RasterPage(BaseModel):
    """单页栅格化结果"""
    page_index: int = 0
    page_count: int = 1

    # 高清母版（展示/打印保真）
    master_bytes: bytes
    master_mime: str = "image/png"
    width: int
    height: int

    # 压缩分析图（仅用于字段检测）
    analysis_bytes: bytes
    analysis_mime: str = "image/jpeg"
    analysis_width: int
    analysis_height: int
