"""
分类登记 - 工作区的模板分类与扁平子分类集合

子分类只追加，除非显式调用移除（权限校验由外部负责）
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path

from ..config import RuntimeConfig
from ..interfaces import ValidationError
from ..models import Category, WorkspaceContext

logger = logging.getLogger(__name__)


class CategoryRegistry:
    """分类登记实现"""

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self._cache: dict[str, list[Category]] = {}
        self._lock = threading.RLock()

    def list_categories(self, ctx: WorkspaceContext) -> list[Category]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._categories(ctx)]

    def get(self, ctx: WorkspaceContext, name: str) -> Category | None:
        for c in self.list_categories(ctx):
            if c.name == name:
                return c
        return None

    def add_category(self, ctx: WorkspaceContext, name: str) -> Category:
        """新增分类（已存在则返回现有）"""
        name = name.strip()
        if not name:
            raise ValidationError("分类名称不能为空", issues=["分类名称不能为空"])
        with self._lock:
            categories = self._categories(ctx)
            for c in categories:
                if c.name == name:
                    return c.model_copy(deep=True)
            category = Category(id=f"cat-{uuid.uuid4().hex[:8]}", name=name)
            categories.append(category)
            self._persist(ctx)
        return category.model_copy(deep=True)

    def register(self, ctx: WorkspaceContext, category: str, sub_category: str | None = None) -> None:
        """保存模板时登记分类与子分类"""
        if not category.strip():
            return
        with self._lock:
            self.add_category(ctx, category)
            if sub_category:
                self.add_sub_category(ctx, category, sub_category)

    def add_sub_category(self, ctx: WorkspaceContext, category: str, sub_category: str) -> bool:
        with self._lock:
            target = self._find(ctx, category)
            added = target.add_sub_category(sub_category)
            if added:
                self._persist(ctx)
        return added

    def remove_sub_category(self, ctx: WorkspaceContext, category: str, sub_category: str) -> bool:
        """显式移除子分类"""
        with self._lock:
            target = self._find(ctx, category)
            removed = target.remove_sub_category(sub_category)
            if removed:
                self._persist(ctx)
                logger.info(f"[{ctx.workspace_id}] 子分类已移除: {category}/{sub_category}")
        return removed

    def _find(self, ctx: WorkspaceContext, name: str) -> Category:
        for c in self._categories(ctx):
            if c.name == name:
                return c
        raise ValidationError("分类不存在", issues=[f"分类不存在: {name}"])

    def _file(self, ctx: WorkspaceContext) -> Path:
        return self.config.get_workspace_dir(ctx.workspace_id) / "categories.json"

    def _categories(self, ctx: WorkspaceContext) -> list[Category]:
        if ctx.workspace_id not in self._cache:
            path = self._file(ctx)
            loaded: list[Category] = []
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    loaded = [Category.model_validate(c) for c in json.load(f)]
            self._cache[ctx.workspace_id] = loaded
        return self._cache[ctx.workspace_id]

    def _persist(self, ctx: WorkspaceContext) -> None:
        path = self._file(ctx)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                [c.model_dump(mode="json", by_alias=True) for c in self._categories(ctx)],
                f,
                ensure_ascii=False,
                indent=2,
            )
