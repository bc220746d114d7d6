"""
数据模型层 - 定义系统核心数据结构

所有模块通过这些模型交互，实现解耦：
- DocumentTemplate / TemplateField: 模板与字段
- BoundingBox / FieldStyle / RenderRect: 几何与样式
- BulkGenerationJob: 批量任务状态与生命周期
- TabularDataset: 批量数据源
- WorkspaceContext / CancelToken: 显式运行上下文
"""

from .context import CancelToken, WorkspaceContext
from .dataset import TabularDataset
from .detection import DetectionResult, RasterPage
from .geometry import NORMALIZED_MAX, BoundingBox, FieldStyle, RenderRect
from .job import BulkGenerationJob, JobStatus
from .template import (
    PLACEHOLDER_PATTERN,
    Category,
    DocumentTemplate,
    FieldCategory,
    FieldType,
    TemplateField,
    VersionHistoryEntry,
    find_field_conflicts,
)

__all__ = [
    "BoundingBox",
    "FieldStyle",
    "RenderRect",
    "NORMALIZED_MAX",
    "DocumentTemplate",
    "TemplateField",
    "FieldType",
    "FieldCategory",
    "VersionHistoryEntry",
    "Category",
    "PLACEHOLDER_PATTERN",
    "find_field_conflicts",
    "BulkGenerationJob",
    "JobStatus",
    "TabularDataset",
    "DetectionResult",
    "RasterPage",
    "WorkspaceContext",
    "CancelToken",
]
