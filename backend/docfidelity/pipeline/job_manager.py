"""
任务管理器 - 批量任务创建/查询/更新/取消

职责：
1. 创建任务并分配ID（引用模板ID，不持有模板）
2. 任务状态持久化（storage/jobs/<id>/job.json）
3. 取消即丢弃：删除任务记录与工作目录

测试要点：
- test_create_job: 创建任务为 QUEUED
- test_get_job_from_disk: 缓存失效后从磁盘加载
- test_update_job: 更新任务
- test_cancel_job_discards: 取消后记录与目录均删除
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
import uuid

from ..config import RuntimeConfig, get_config
from ..interfaces import IJobManager
from ..models import BulkGenerationJob, DocumentTemplate, JobStatus

logger = logging.getLogger(__name__)


class JobManager(IJobManager):
    """任务管理器实现"""

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or get_config()
        self._jobs: dict[str, BulkGenerationJob] = {}  # 内存缓存
        self._lock = threading.RLock()

    def create_job(self, template: DocumentTemplate, total_records: int) -> BulkGenerationJob:
        """创建任务"""
        job = BulkGenerationJob(
            id=str(uuid.uuid4()),
            template_id=template.id,
            template_name=template.name,
            total_records=total_records,
        )
        with self._lock:
            self._jobs[job.id] = job
            self._persist_job(job)
        logger.info(f"[{job.id}] 任务已创建: {template.name} x {total_records}")
        return job

    def get_job(self, job_id: str) -> BulkGenerationJob | None:
        """获取任务"""
        with self._lock:
            if job_id in self._jobs:
                return self._jobs[job_id]

            job = self._load_job(job_id)
            if job:
                self._jobs[job_id] = job
            return job

    def update_job(self, job: BulkGenerationJob) -> None:
        """更新任务状态"""
        with self._lock:
            self._jobs[job.id] = job
            self._persist_job(job)

    def cancel_job(self, job_id: str) -> bool:
        """取消任务（丢弃记录与中间产物）"""
        with self._lock:
            job = self.get_job(job_id)
            if not job:
                return False
            if job.status == JobStatus.COMPLETED:
                return False

            self._jobs.pop(job_id, None)
            job_dir = self.config.get_job_dir(job_id)
            if job_dir.exists():
                shutil.rmtree(job_dir)
        logger.info(f"[{job_id}] 任务已取消并丢弃")
        return True

    def list_jobs(
        self,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[BulkGenerationJob]:
        """列出任务"""
        with self._lock:
            jobs = list(self._jobs.values())

        if status:
            jobs = [j for j in jobs if j.status == status]

        # 按创建时间降序
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        return jobs[:limit]

    def _persist_job(self, job: BulkGenerationJob) -> None:
        """持久化任务"""
        job_dir = self.config.get_job_dir(job.id)
        job_dir.mkdir(parents=True, exist_ok=True)

        job_file = job_dir / "job.json"
        with open(job_file, "w", encoding="utf-8") as f:
            json.dump(job.model_dump(mode="json", by_alias=True), f, ensure_ascii=False, indent=2)

    def _load_job(self, job_id: str) -> BulkGenerationJob | None:
        """从磁盘加载任务"""
        job_file = self.config.get_job_dir(job_id) / "job.json"

        if not job_file.exists():
            return None

        try:
            with open(job_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return BulkGenerationJob.model_validate(data)
        except (OSError, ValueError) as e:
            logger.error(f"[{job_id}] 任务文件损坏: {e}")
            return None
