"""
模板制作模块

子模块：
- rasterizer: 源文件 → 高清母版 + 分析图
- session: 制作流程状态机
"""

from .rasterizer import Rasterizer
from .session import DEFAULT_MANUAL_RECT, TRANSITIONS, AuthoringSession, AuthoringState

__all__ = [
    "Rasterizer",
    "AuthoringSession",
    "AuthoringState",
    "TRANSITIONS",
    "DEFAULT_MANUAL_RECT",
]
