"""
文档生成模块

子模块：
- document: 模板 + 取值 → 文档字节（单份/批量共用）
- single: 单份文档生成会话
"""

from .document import (
    FORMATS,
    DocumentRenderer,
    GeneratedDocument,
    PageImageResolver,
    safe_name,
)
from .single import GenerationSession

__all__ = [
    "GenerationSession",
    "DocumentRenderer",
    "GeneratedDocument",
    "PageImageResolver",
    "FORMATS",
    "safe_name",
]
