"""
模板仓库 - 模板的保存/查询/更新/删除与版本历史

职责：
1. 按工作区隔离存储模板（内存缓存 + JSON 持久化）
2. 内容变更时版本号+1并追加历史（历史只追加）
3. 使用次数/收藏等非内容变更不影响版本
4. 保存时自动登记分类/子分类
5. 读取返回副本，生成会话持有的快照不受后续编辑影响

测试要点：
- test_add_and_get_roundtrip: 保存后读取字段/正文/历史一致
- test_update_bumps_version: 更新版本递增并追加历史
- test_usage_no_version_bump: 使用计数不改版本
- test_duplicate_field_rejected: 重名字段拒绝
- test_workspace_isolation: 工作区隔离
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..config import RuntimeConfig, get_config
from ..interfaces import ITemplateStore, ValidationError
from ..models import DocumentTemplate, VersionHistoryEntry, WorkspaceContext
from .categories import CategoryRegistry

logger = logging.getLogger(__name__)

# 会触发版本递增的属性
CONTENT_ATTRS = frozenset({
    "name",
    "description",
    "category",
    "sub_category",
    "tags",
    "content",
    "fidelity_image",
    "fidelity_master",
    "fields",
})

INITIAL_CHANGES = "Initial creation."


def semantic_version(version: int) -> str:
    return f"{version}.0.0"


def make_history_entry(version: int, author: str, changes: str) -> VersionHistoryEntry:
    return VersionHistoryEntry(
        id=f"v{version}",
        version=semantic_version(version),
        date=datetime.now(),
        author=author,
        changes=changes,
    )


class TemplateStore(ITemplateStore):
    """模板仓库实现"""

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or get_config()
        self.categories = CategoryRegistry(self.config)
        self._templates: dict[tuple[str, str], DocumentTemplate] = {}  # 内存缓存
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # 增删改查
    # ------------------------------------------------------------------

    def add(self, ctx: WorkspaceContext, template: DocumentTemplate) -> DocumentTemplate:
        """保存新模板"""
        validate_template(template)
        template = template.model_copy(deep=True)
        if not template.history:
            template.version = 1
            template.history = [make_history_entry(1, ctx.author, INITIAL_CHANGES)]

        for w in template.placeholder_warnings():
            logger.warning(f"[{template.name}] {w}")

        with self._lock:
            if self._load(ctx, template.id) is not None:
                raise ValidationError("模板ID已存在", issues=[f"模板ID已存在: {template.id}"])
            self.categories.register(ctx, template.category, template.sub_category)
            self._templates[(ctx.workspace_id, template.id)] = template
            self._persist(ctx, template)

        logger.info(f"[{ctx.workspace_id}] 模板已保存: {template.name} ({template.id})")
        return template.model_copy(deep=True)

    def get(self, ctx: WorkspaceContext, template_id: str) -> DocumentTemplate | None:
        """获取模板（副本）"""
        with self._lock:
            template = self._load(ctx, template_id)
        return template.model_copy(deep=True) if template else None

    def require(self, ctx: WorkspaceContext, template_id: str) -> DocumentTemplate:
        template = self.get(ctx, template_id)
        if template is None:
            raise ValidationError("模板不存在", issues=[f"模板不存在: {template_id}"])
        return template

    def list_templates(
        self,
        ctx: WorkspaceContext,
        category: str | None = None,
        sub_category: str | None = None,
        query: str | None = None,
        favorites_only: bool = False,
    ) -> list[DocumentTemplate]:
        """列出模板（按创建时间降序）"""
        with self._lock:
            self._load_all(ctx)
            templates = [
                t for (ws, _), t in self._templates.items() if ws == ctx.workspace_id
            ]

        if category:
            templates = [t for t in templates if t.category == category]
        if sub_category:
            templates = [t for t in templates if t.sub_category == sub_category]
        if favorites_only:
            templates = [t for t in templates if t.is_favorite]
        if query:
            q = query.strip().lower()
            templates = [
                t for t in templates
                if q in t.name.lower()
                or q in t.description.lower()
                or any(q in tag.lower() for tag in t.tags)
            ]

        templates.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in templates]

    def update(
        self,
        ctx: WorkspaceContext,
        template_id: str,
        changes: str,
        author: str | None = None,
        **updates: Any,
    ) -> DocumentTemplate:
        """更新模板内容（版本号+1并追加历史）"""
        unknown = set(updates) - CONTENT_ATTRS
        if unknown:
            raise ValidationError("不支持的更新项", issues=[f"不支持的更新项: {k}" for k in sorted(unknown)])
        if not updates:
            raise ValidationError("没有需要更新的内容", issues=["没有需要更新的内容"])

        with self._lock:
            current = self._load(ctx, template_id)
            if current is None:
                raise ValidationError("模板不存在", issues=[f"模板不存在: {template_id}"])

            data = current.model_dump()
            data.update(updates)
            data["version"] = current.version + 1
            data["updated_at"] = datetime.now()
            data["history"] = [
                *current.history,
                make_history_entry(current.version + 1, author or ctx.author, changes),
            ]
            try:
                updated = DocumentTemplate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError("模板更新无效", issues=_pydantic_issues(e)) from e
            validate_template(updated)

            self.categories.register(ctx, updated.category, updated.sub_category)
            self._templates[(ctx.workspace_id, template_id)] = updated
            self._persist(ctx, updated)

        logger.info(f"[{ctx.workspace_id}] 模板已更新: {updated.name} v{updated.version}")
        return updated.model_copy(deep=True)

    def record_usage(self, ctx: WorkspaceContext, template_id: str) -> None:
        """记录一次使用（不改版本）"""
        with self._lock:
            template = self._load(ctx, template_id)
            if template is None:
                return
            template.usage_count = (template.usage_count or 0) + 1
            template.last_used = datetime.now()
            self._persist(ctx, template)

    def set_favorite(self, ctx: WorkspaceContext, template_id: str, favorite: bool) -> bool:
        """设置收藏（不改版本）"""
        with self._lock:
            template = self._load(ctx, template_id)
            if template is None:
                return False
            template.is_favorite = favorite
            self._persist(ctx, template)
        return True

    def delete(self, ctx: WorkspaceContext, template_id: str) -> bool:
        """删除模板（已生成的批量归档不受影响）"""
        with self._lock:
            if self._load(ctx, template_id) is None:
                return False
            self._templates.pop((ctx.workspace_id, template_id), None)
            path = self._template_file(ctx, template_id)
            if path.exists():
                path.unlink()
        logger.info(f"[{ctx.workspace_id}] 模板已删除: {template_id}")
        return True

    @staticmethod
    def new_id() -> str:
        return f"tmpl-{uuid.uuid4().hex[:12]}"

    # ------------------------------------------------------------------
    # 持久化
    # ------------------------------------------------------------------

    def _template_dir(self, ctx: WorkspaceContext) -> Path:
        return self.config.get_workspace_dir(ctx.workspace_id) / "templates"

    def _template_file(self, ctx: WorkspaceContext, template_id: str) -> Path:
        return self._template_dir(ctx) / f"{template_id}.json"

    def _persist(self, ctx: WorkspaceContext, template: DocumentTemplate) -> None:
        """持久化模板"""
        path = self._template_file(ctx, template.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                template.model_dump(mode="json", by_alias=True, exclude_none=True),
                f,
                ensure_ascii=False,
                indent=2,
            )

    def _load(self, ctx: WorkspaceContext, template_id: str) -> DocumentTemplate | None:
        """先查缓存，再从磁盘加载"""
        key = (ctx.workspace_id, template_id)
        if key in self._templates:
            return self._templates[key]

        path = self._template_file(ctx, template_id)
        if not path.exists():
            return None
        template = _read_template(path)
        if template is not None:
            self._templates[key] = template
        return template

    def _load_all(self, ctx: WorkspaceContext) -> None:
        directory = self._template_dir(ctx)
        if not directory.exists():
            return
        for path in sorted(directory.glob("*.json")):
            self._load(ctx, path.stem)


def validate_template(template: DocumentTemplate) -> None:
    """保存前校验（逐条列出问题）"""
    issues: list[str] = []
    if not template.name.strip():
        issues.append("模板名称不能为空")
    names = [f.name for f in template.fields]
    for name in sorted({n for n in names if names.count(n) > 1}):
        issues.append(f"字段名重复: {name}")
    for f in template.fields:
        if f.options is not None and f.type.value != "DROPDOWN":
            issues.append(f"字段 {f.name} 不是下拉类型却设置了选项")
    if issues:
        raise ValidationError("模板校验未通过", issues=issues)


def _read_template(path: Path) -> DocumentTemplate | None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return DocumentTemplate.model_validate(json.load(f))
    except (OSError, ValueError) as e:
        logger.error(f"模板文件损坏，已跳过: {path}: {e}")
        return None


def _pydantic_issues(error: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or 'template'}: {err['msg']}"
        for err in error.errors()
    ]
