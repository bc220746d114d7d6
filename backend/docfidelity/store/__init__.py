"""
模板仓库模块

子模块：
- template_store: 模板存储与版本历史
- categories: 分类/子分类登记
"""

from .categories import CategoryRegistry
from .template_store import (
    INITIAL_CHANGES,
    TemplateStore,
    make_history_entry,
    semantic_version,
    validate_template,
)

__all__ = [
    "TemplateStore",
    "CategoryRegistry",
    "INITIAL_CHANGES",
    "make_history_entry",
    "semantic_version",
    "validate_template",
]
