"""
运行期配置 - 读取 config/runtime.yaml

职责：
- 加载外部服务/超时/栅格化/存储等运行参数
- 提供环境变量覆盖机制（前缀 DOCFID_，嵌套分隔符 __）
- 类型安全的配置访问
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class GatewayConfig(BaseModel):
    """识别服务网关配置"""

    base_url: str = "http://localhost:5001"
    api_key: str = ""
    detect_path: str = "/ai/detect-fields"
    mapping_path: str = "/ai/suggest-mapping"
    fill_path: str = "/ai/fill-form"
    max_payload_mb: float = 10.0
    max_retries: int = 0  # 调用可能计费，默认不重试

    @property
    def max_payload_bytes(self) -> int:
        return int(self.max_payload_mb * 1024 * 1024)


class TimeoutConfig(BaseModel):
    """超时配置（仅外部服务调用）"""

    detect_sec: float = 60.0
    mapping_sec: float = 30.0
    fill_sec: float = 30.0


class RasterConfig(BaseModel):
    """栅格化配置"""

    master_scale: float = 2.0      # PDF母版渲染倍率（72dpi基准）
    analysis_max_dim: int = 1600   # 分析图最长边
    analysis_quality: int = 80     # 分析图JPEG质量


class BulkConfig(BaseModel):
    """批量生成配置"""

    batch_delay_ms: int = 0
    export_format: str = "png"


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_to_file: bool = False


class RuntimeConfig(BaseSettings):
    """运行期配置（支持环境变量覆盖）"""

    # 基础路径
    base_dir: Path = Path(".")
    storage_dir: Path = Path("storage")
    render_profile_path: Path = Path("config/render_profile.yaml")

    # 各子配置
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    raster: RasterConfig = Field(default_factory=RasterConfig)
    bulk: BulkConfig = Field(default_factory=BulkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "DOCFID_",
        "env_nested_delimiter": "__",
        "arbitrary_types_allowed": True,
    }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> RuntimeConfig:
        """从YAML文件加载配置"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        runtime_opts = data.get("runtime_options", {})
        paths = data.get("paths", {})

        config = cls(
            gateway=GatewayConfig(**cls._extract(runtime_opts, "gateway")),
            timeouts=TimeoutConfig(**cls._extract(runtime_opts, "timeouts")),
            raster=RasterConfig(**cls._extract(runtime_opts, "raster")),
            bulk=BulkConfig(**cls._extract(runtime_opts, "bulk")),
            logging=LoggingConfig(**cls._extract(runtime_opts, "logging")),
            **{k: Path(v) for k, v in paths.items() if k in ("storage_dir", "render_profile_path")},
        )

        config._resolve_paths(base_dir=path.parent)
        return config

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置"""
        section = data.get(key, {}) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            elif not isinstance(v, dict):
                result[k] = v
        return result

    def _resolve_paths(self, base_dir: Path) -> None:
        """解析相对路径配置为绝对路径（基于配置文件所在目录的上级）"""
        root = base_dir.parent if base_dir.name == "config" else base_dir
        if not self.storage_dir.is_absolute():
            self.storage_dir = (root / self.storage_dir).resolve()
        if not self.render_profile_path.is_absolute():
            self.render_profile_path = (root / self.render_profile_path).resolve()

    def get_job_dir(self, job_id: str) -> Path:
        """获取任务工作目录"""
        return self.storage_dir / "jobs" / job_id

    def get_workspace_dir(self, workspace_id: str) -> Path:
        """获取工作区目录"""
        return self.storage_dir / "workspaces" / workspace_id

    def ensure_dirs(self) -> None:
        """确保必要目录存在"""
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        (self.storage_dir / "jobs").mkdir(exist_ok=True)
        (self.storage_dir / "workspaces").mkdir(exist_ok=True)


# 全局配置实例
_config: RuntimeConfig | None = None

DEFAULT_CONFIG_PATH = Path("config/runtime.yaml")


def get_config() -> RuntimeConfig:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> RuntimeConfig:
    """重新加载配置"""
    global _config
    _config = RuntimeConfig.from_yaml(yaml_path or DEFAULT_CONFIG_PATH)
    return _config


def set_config(config: RuntimeConfig | None) -> None:
    """替换全局配置（测试/嵌入场景）"""
    global _config
    _config = config
