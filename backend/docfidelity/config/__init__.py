"""
配置层 - 加载运行期配置与渲染配置

职责：
- 加载 config/runtime.yaml（运行期参数）
- 加载 config/render_profile.yaml（渲染兜底样式/字体映射）
- 提供类型安全的配置访问接口
"""

from .log import setup_logging
from .render_profile import RenderProfile, RenderProfileLoader, load_render_profile
from .runtime_config import (
    BulkConfig,
    GatewayConfig,
    RasterConfig,
    RuntimeConfig,
    TimeoutConfig,
    get_config,
    reload_config,
    set_config,
)

__all__ = [
    "RenderProfile",
    "RenderProfileLoader",
    "load_render_profile",
    "RuntimeConfig",
    "GatewayConfig",
    "TimeoutConfig",
    "RasterConfig",
    "BulkConfig",
    "get_config",
    "reload_config",
    "set_config",
    "setup_logging",
]
