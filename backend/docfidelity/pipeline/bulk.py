"""
批量生成器 - 表格数据 × 模板 → ZIP 归档

职责：
1. 每行按映射构造取值（映射单元格 → 字段默认值 → 空串）
2. 固定批大小分批渲染，每批结束回调累计进度（严格递增，最后一批恰为总数）
3. 全部渲染完成后打包，任务进入 COMPLETED 并记录下载句柄
4. 不可恢复错误：任务 FAILED，进度停在最后完成的批次，已渲染产物丢弃
5. 每个批次边界检查取消令牌；取消即丢弃任务记录

测试要点：
- test_progress_sequence: 进度序列与总数
- test_archive_entry_count: 归档条目数等于行数
- test_failure_freezes_progress: 失败时进度冻结且无归档
- test_cancel_discards_job: 取消后无任务记录
- test_row_values_fallback: 映射缺失使用默认值
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..authoring.rasterizer import Rasterizer
from ..config import RuntimeConfig, get_config, load_render_profile
from ..generation import DocumentRenderer
from ..interfaces import BatchError, CancelledError, ValidationError
from ..models import (
    BulkGenerationJob,
    CancelToken,
    DocumentTemplate,
    TabularDataset,
    WorkspaceContext,
)
from ..render import OverlayRenderer
from ..store import TemplateStore
from .job_manager import JobManager
from .packager import Packager, entry_name
from .stages import BULK_STAGES, PipelineStage, StageEnum

logger = logging.getLogger(__name__)

BATCH_SIZE = 5

ProgressCallback = Callable[[int], None]


def build_row_values(
    template: DocumentTemplate,
    dataset: TabularDataset,
    mapping: dict[str, str | None],
) -> list[dict[str, str]]:
    """每行一份取值（映射单元格 → 默认值 → 空串）"""
    columns = {
        name: dataset.header_index(header) if header else None
        for name, header in mapping.items()
    }
    result = []
    for row in dataset.rows:
        values: dict[str, str] = {}
        for field in template.fields:
            idx = columns.get(field.name)
            cell = row[idx].strip() if idx is not None else ""
            values[field.name] = cell or field.default_value or ""
        result.append(values)
    return result


def validate_bulk_input(
    template: DocumentTemplate,
    dataset: TabularDataset,
    mapping: dict[str, str | None],
) -> None:
    """批量输入校验（逐条列出问题）"""
    issues: list[str] = []
    if dataset.row_count == 0:
        issues.append("数据表没有数据行")
    names = set(template.field_names)
    for name, header in mapping.items():
        if name not in names:
            issues.append(f"映射了不存在的字段: {name}")
        elif header and dataset.header_index(header) is None:
            issues.append(f"映射的表头不存在: {name} -> {header}")
    if issues:
        raise ValidationError("批量生成输入无效", issues=issues)


class BulkGenerator:
    """批量生成器"""

    def __init__(
        self,
        ctx: WorkspaceContext,
        job_manager: JobManager | None = None,
        packager: Packager | None = None,
        store: TemplateStore | None = None,
        renderer: OverlayRenderer | None = None,
        rasterizer: Rasterizer | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.ctx = ctx
        self.config = config or get_config()
        self.job_manager = job_manager or JobManager(self.config)
        self.packager = packager or Packager(self.config)
        self.store = store
        self.renderer = renderer or OverlayRenderer(load_render_profile(self.config.render_profile_path))
        self.rasterizer = rasterizer or Rasterizer(self.config)

    def run(
        self,
        template: DocumentTemplate,
        dataset: TabularDataset,
        mapping: dict[str, str | None],
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
        fmt: str | None = None,
    ) -> BulkGenerationJob:
        """执行批量生成（同步顺序执行）"""
        validate_bulk_input(template, dataset, mapping)
        template = template.model_copy(deep=True)
        cancel_token = cancel_token or CancelToken()

        job = self.job_manager.create_job(template, dataset.row_count)
        context: dict = {
            "template": template,
            "dataset": dataset,
            "mapping": mapping,
            "format": fmt or self.config.bulk.export_format,
            "rows": [],
            "entries": [],
        }

        try:
            cancel_token.raise_if_cancelled()
            job.mark_processing()
            self.job_manager.update_job(job)

            for stage in BULK_STAGES:
                cancel_token.raise_if_cancelled()
                self._execute_stage(job, stage, context, on_progress, cancel_token)

        except CancelledError:
            context["entries"].clear()
            self.job_manager.cancel_job(job.id)
            logger.info(f"[{job.id}] 批量生成已取消")
            raise

        except Exception as e:
            logger.exception(f"批量生成失败: {job.id}")
            context["entries"].clear()
            job.mark_failed(str(e))
            self.job_manager.update_job(job)
            raise BatchError(f"批量生成失败（已完成 {job.processed_records}/{job.total_records}）: {e}") from e

        if self.store is not None:
            self.store.record_usage(self.ctx, template.id)
        return job

    def _execute_stage(
        self,
        job: BulkGenerationJob,
        stage: PipelineStage,
        context: dict,
        on_progress: ProgressCallback | None,
        cancel_token: CancelToken,
    ) -> None:
        """执行单个阶段"""
        logger.info(f"[{job.id}] 开始阶段: {stage.name.value}")

        if stage.name == StageEnum.PREPARE_ROWS:
            context["rows"] = build_row_values(
                context["template"], context["dataset"], context["mapping"]
            )

        elif stage.name == StageEnum.RENDER_BATCHES:
            self._stage_render(job, context, on_progress, cancel_token)

        elif stage.name == StageEnum.PACKAGE_ZIP:
            download_url = self.packager.package(job, context["entries"])
            job.mark_completed(download_url)
            self.job_manager.update_job(job)

        logger.info(f"[{job.id}] 完成阶段: {stage.name.value}")

    def _stage_render(
        self,
        job: BulkGenerationJob,
        context: dict,
        on_progress: ProgressCallback | None,
        cancel_token: CancelToken,
    ) -> None:
        """分批渲染（进度仅在批次完成后推进）"""
        template: DocumentTemplate = context["template"]
        rows: list[dict[str, str]] = context["rows"]
        document = DocumentRenderer(template, self.renderer, self.rasterizer)
        fmt = document.resolve_format(context["format"])
        delay = self.config.bulk.batch_delay_ms / 1000

        for start in range(0, len(rows), BATCH_SIZE):
            cancel_token.raise_if_cancelled()
            batch_entries = []
            for offset, values in enumerate(rows[start:start + BATCH_SIZE]):
                ordinal = start + offset + 1
                generated = document.render(values, fmt)
                batch_entries.append(
                    (entry_name(template.name, ordinal, len(rows), generated.extension), generated.data)
                )
            context["entries"].extend(batch_entries)

            job.advance(start + len(batch_entries))
            self.job_manager.update_job(job)
            if on_progress is not None:
                on_progress(job.processed_records)
            logger.info(f"[{job.id}] 进度: {job.processed_records}/{job.total_records}")

            if delay > 0:
                time.sleep(delay)
