"""
批量生成流水线模块

子模块：
- tabular: CSV/XLSX 数据读取
- job_manager: 任务管理
- packager: 打包器
- stages: 阶段定义
- bulk: 批量生成器
"""

from .bulk import BATCH_SIZE, BulkGenerator, build_row_values, validate_bulk_input
from .job_manager import JobManager
from .packager import MANIFEST_NAME, Packager, entry_name, export_folder
from .stages import BULK_STAGES, PipelineStage, StageEnum
from .tabular import load_tabular, load_xlsx, parse_csv

__all__ = [
    "BulkGenerator",
    "BATCH_SIZE",
    "build_row_values",
    "validate_bulk_input",
    "JobManager",
    "Packager",
    "MANIFEST_NAME",
    "entry_name",
    "export_folder",
    "PipelineStage",
    "StageEnum",
    "BULK_STAGES",
    "parse_csv",
    "load_xlsx",
    "load_tabular",
]
