"""
日志初始化 - 按 LoggingConfig 配置根日志器
"""

from __future__ import annotations

import logging

from .runtime_config import RuntimeConfig, get_config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(config: RuntimeConfig | None = None) -> None:
    """配置日志级别与可选的文件输出"""
    config = config or get_config()
    level = getattr(logging, config.logging.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.logging.log_to_file:
        log_dir = config.storage_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "docfidelity.log", encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
