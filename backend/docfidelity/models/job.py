"""
任务模型 - 批量生成任务的状态与生命周期

生命周期：QUEUED → PROCESSING → COMPLETED | FAILED
processed_records 只增不减，上限为 total_records
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """任务状态枚举"""
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BulkGenerationJob(BaseModel):
    """批量生成任务实体"""
    id: str = Field(..., description="UUID")
    template_id: str
    template_name: str

    # 进度
    total_records: int = Field(..., ge=0)
    processed_records: int = Field(0, ge=0)

    # 状态
    status: JobStatus = JobStatus.QUEUED
    download_url: str | None = Field(None, description="归档下载句柄，不内嵌产物")
    error: str | None = None

    # 时间戳
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def mark_processing(self) -> None:
        """标记为处理中"""
        if self.status != JobStatus.QUEUED:
            raise ValueError(f"任务状态 {self.status.value} 不能开始处理")
        self.status = JobStatus.PROCESSING
        self.started_at = datetime.now()

    def advance(self, processed: int) -> None:
        """推进累计处理数（单调递增）"""
        if self.status != JobStatus.PROCESSING:
            raise ValueError(f"任务状态 {self.status.value} 不能推进进度")
        if processed < self.processed_records:
            raise ValueError(f"进度不能回退: {self.processed_records} -> {processed}")
        if processed > self.total_records:
            raise ValueError(f"进度超出总数: {processed}/{self.total_records}")
        self.processed_records = processed

    def mark_completed(self, download_url: str) -> None:
        """标记为完成"""
        self.status = JobStatus.COMPLETED
        self.download_url = download_url
        self.finished_at = datetime.now()

    def mark_failed(self, error: str) -> None:
        """标记为失败（进度保留为元数据）"""
        self.status = JobStatus.FAILED
        self.error = error
        self.download_url = None
        self.finished_at = datetime.now()
