"""
打包器 - 批量产物打包为 ZIP 并生成 manifest

职责：
1. 产物写入 <模板名>_Bulk_Export/ 目录，文件名带零填充序号
2. 归档根目录写入 manifest.json（条目时间固定，内容只取自任务）
3. 返回下载句柄（file:// URI），任务记录只保存句柄

测试要点：
- test_package_zip: 条目数与命名
- test_manifest_structure: manifest结构
- test_archive_reproducible: 重复打包字节一致
"""

from __future__ import annotations

import json
import logging
import zipfile

from ..config import RuntimeConfig, get_config
from ..generation import safe_name
from ..interfaces import IPackager
from ..models import BulkGenerationJob

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"

# 条目时间固定，同一任务重复打包字节一致
ENTRY_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def export_folder(template_name: str) -> str:
    return f"{safe_name(template_name)}_Bulk_Export"


def entry_name(template_name: str, ordinal: int, total: int, extension: str) -> str:
    """归档内文件名（序号按总数零填充，至少3位）"""
    width = max(3, len(str(total)))
    return f"{safe_name(template_name)}_{ordinal:0{width}d}.{extension}"


def _zip_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ENTRY_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


class Packager(IPackager):
    """打包器实现"""

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or get_config()

    def package(self, job: BulkGenerationJob, entries: list[tuple[str, bytes]]) -> str:
        """打包交付产物"""
        job_dir = self.config.get_job_dir(job.id)
        job_dir.mkdir(parents=True, exist_ok=True)
        folder = export_folder(job.template_name)
        zip_path = job_dir / f"{folder}.zip"

        try:
            with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
                for name, data in entries:
                    zf.writestr(_zip_info(f"{folder}/{name}"), data)
                zf.writestr(
                    _zip_info(MANIFEST_NAME),
                    json.dumps(self.generate_manifest(job, entries), ensure_ascii=False, indent=2),
                )
        except Exception:
            # 不保留不完整的归档
            zip_path.unlink(missing_ok=True)
            raise

        logger.info(f"[{job.id}] 归档完成: {zip_path.name} ({len(entries)} 个文件)")
        return zip_path.resolve().as_uri()

    def generate_manifest(self, job: BulkGenerationJob, entries: list[tuple[str, bytes]]) -> dict:
        """生成manifest内容"""
        return {
            "schema_version": "1.0",
            "job_id": job.id,
            "template": {
                "id": job.template_id,
                "name": job.template_name,
            },
            "counts": {
                "total_records": job.total_records,
                "files": len(entries),
            },
            "files": [name for name, _ in entries],
            "timestamps": {
                "created_at": job.created_at.isoformat() if job.created_at else None,
                "started_at": job.started_at.isoformat() if job.started_at else None,
            },
        }
