"""
模板制作会话 - 上传 → 预览 → 识别 → 调整 → 保存

职责：
1. 显式状态机（UPLOAD/PREVIEW/SCANNING/REFINE/SAVED/CANCELLED），非法迁移抛错
2. 源文件栅格化为高清母版 + 分析图（多页按需渲染并缓存）
3. 调用字段检测并合并结果；失败回到预览，母版与已有字段保留
4. 字段调整：重命名/改类型/改坐标/删除/手动新增（手动字段使用醒目样式），同页重叠字段保存时告警
5. 保存：校验后生成版本1，母版页与源文件以 data URI 内嵌
6. 任意状态可取消，丢弃全部内容且不落盘

依赖：
- Rasterizer: 源文件栅格化
- IFieldDetector: 字段检测（外部识别服务）
- TemplateStore: 模板持久化

测试要点：
- test_upload_to_preview: 上传后进入预览并生成母版
- test_detect_failure_keeps_master: 识别失败回到预览，母版保留
- test_illegal_transition: 非法迁移抛 StateTransitionError
- test_edits_rejected_while_scanning: 识别中拒绝编辑
- test_page_switch_keeps_fields: 换页不丢其他页字段
- test_save_initial_version: 保存生成 v1 与初始历史
- test_cancel_discards: 取消后不落盘
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..config import RenderProfile, RuntimeConfig, get_config, load_render_profile
from ..interfaces import (
    CancelledError,
    ExternalServiceError,
    IFieldDetector,
    RenderError,
    StateTransitionError,
    ValidationError,
)
from ..models import (
    BoundingBox,
    CancelToken,
    DetectionResult,
    DocumentTemplate,
    FieldCategory,
    FieldType,
    RasterPage,
    TemplateField,
    WorkspaceContext,
)
from ..render import OverlayRenderer, encode_data_uri, from_pixel_box
from ..store import INITIAL_CHANGES, TemplateStore, make_history_entry
from .rasterizer import Rasterizer

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"

# 手动新增字段的默认位置（页面中部）
DEFAULT_MANUAL_RECT = BoundingBox(ymin=450, xmin=350, ymax=500, xmax=650)


class AuthoringState(str, Enum):
    """制作流程状态"""
    UPLOAD = "UPLOAD"
    PREVIEW = "PREVIEW"
    SCANNING = "SCANNING"
    REFINE = "REFINE"
    SAVED = "SAVED"
    CANCELLED = "CANCELLED"


# 状态迁移表（未列出的迁移均非法）
TRANSITIONS: dict[AuthoringState, frozenset[AuthoringState]] = {
    AuthoringState.UPLOAD: frozenset({AuthoringState.PREVIEW, AuthoringState.CANCELLED}),
    AuthoringState.PREVIEW: frozenset({
        AuthoringState.SCANNING,
        AuthoringState.REFINE,
        AuthoringState.UPLOAD,
        AuthoringState.CANCELLED,
    }),
    AuthoringState.SCANNING: frozenset({
        AuthoringState.REFINE,
        AuthoringState.PREVIEW,
        AuthoringState.CANCELLED,
    }),
    AuthoringState.REFINE: frozenset({
        AuthoringState.SCANNING,
        AuthoringState.SAVED,
        AuthoringState.UPLOAD,
        AuthoringState.CANCELLED,
    }),
    AuthoringState.SAVED: frozenset(),
    AuthoringState.CANCELLED: frozenset(),
}

_EDITABLE = (AuthoringState.PREVIEW, AuthoringState.REFINE)


class AuthoringSession:
    """模板制作会话（单线程顺序执行）"""

    def __init__(
        self,
        ctx: WorkspaceContext,
        store: TemplateStore,
        detector: IFieldDetector,
        rasterizer: Rasterizer | None = None,
        config: RuntimeConfig | None = None,
        profile: RenderProfile | None = None,
        cancel_token: CancelToken | None = None,
    ):
        self.ctx = ctx
        self.config = config or get_config()
        self.store = store
        self.detector = detector
        self.rasterizer = rasterizer or Rasterizer(self.config)
        self.profile = profile or load_render_profile(self.config.render_profile_path)
        self.cancel_token = cancel_token or CancelToken()

        self.state = AuthoringState.UPLOAD
        self.last_error: str | None = None
        self.warnings: list[str] = []
        self.saved_template: DocumentTemplate | None = None
        self._reset_source()

    def _reset_source(self) -> None:
        self.source_bytes: bytes | None = None
        self.source_mime: str | None = None
        self.page_count = 0
        self.current_page = 0
        self.name = DEFAULT_TITLE
        self._name_from_user = False
        self._pages: dict[int, RasterPage] = {}
        self._fields: dict[str, TemplateField] = {}  # 按名称唯一，保持插入顺序
        self._id_seq = 0

    # ------------------------------------------------------------------
    # 状态机
    # ------------------------------------------------------------------

    def _transition(self, target: AuthoringState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise StateTransitionError(f"非法的状态迁移: {self.state.value} -> {target.value}")
        if target != AuthoringState.CANCELLED and self.cancel_token.cancelled:
            self._discard()
            raise CancelledError("模板制作已取消")
        logger.info(f"[{self.ctx.workspace_id}] 制作状态: {self.state.value} -> {target.value}")
        self.state = target

    def _require(self, *states: AuthoringState) -> None:
        if self.state not in states:
            allowed = "/".join(s.value for s in states)
            raise StateTransitionError(f"当前状态 {self.state.value} 不允许此操作（需要 {allowed}）")
        self.cancel_token.raise_if_cancelled()

    def _discard(self) -> None:
        self._reset_source()
        self.last_error = None
        self.state = AuthoringState.CANCELLED

    # ------------------------------------------------------------------
    # 上传与预览
    # ------------------------------------------------------------------

    def upload(self, data: bytes, mime_type: str, filename: str | None = None) -> RasterPage:
        """载入源文件并渲染第一页"""
        self._require(AuthoringState.UPLOAD)
        self.last_error = None
        try:
            page_count = self.rasterizer.page_count(data, mime_type)
            page = self.rasterizer.rasterize(data, mime_type, page_index=0)
        except RenderError as e:
            self.last_error = str(e)
            logger.error(f"[{self.ctx.workspace_id}] 源文件无法读取: {e}")
            raise

        self.source_bytes = data
        self.source_mime = mime_type.lower()
        self.page_count = page_count
        self.current_page = 0
        self._pages[0] = page
        if filename:
            self.name = Path(filename).stem or DEFAULT_TITLE
        self._transition(AuthoringState.PREVIEW)
        return page

    @property
    def current_raster(self) -> RasterPage:
        return self._pages[self.current_page]

    def select_page(self, page_index: int) -> RasterPage:
        """切换页面（其他页字段保留）"""
        self._require(*_EDITABLE)
        if not 0 <= page_index < self.page_count:
            raise ValidationError("页码超出范围", issues=[f"页码超出范围: {page_index + 1}/{self.page_count}"])
        try:
            page = self._page(page_index)
        except RenderError as e:
            self._fail_to_upload(e)
            raise
        self.current_page = page_index
        return page

    def _page(self, page_index: int) -> RasterPage:
        if page_index not in self._pages:
            self._pages[page_index] = self.rasterizer.rasterize(
                self.source_bytes, self.source_mime, page_index=page_index
            )
        return self._pages[page_index]

    def _fail_to_upload(self, error: RenderError) -> None:
        logger.error(f"[{self.ctx.workspace_id}] 源文件无法渲染，回到上传: {error}")
        self._transition(AuthoringState.UPLOAD)
        self._reset_source()
        self.last_error = str(error)

    # ------------------------------------------------------------------
    # 字段识别
    # ------------------------------------------------------------------

    def detect(self) -> DetectionResult:
        """对当前页发起字段识别"""
        self._require(*_EDITABLE)
        page = self.current_raster
        self._transition(AuthoringState.SCANNING)
        self.last_error = None

        try:
            result = self.detector.detect_fields(
                page.analysis_bytes, page.analysis_mime, page_index=self.current_page
            )
        except ExternalServiceError as e:
            self.last_error = f"{e.message} {e.hint}"
            logger.warning(f"[{self.ctx.workspace_id}] 字段识别失败({e.code.value}): {e.message}")
            self._transition(AuthoringState.PREVIEW)
            raise

        self._transition(AuthoringState.REFINE)
        self._merge(result)
        if not self._name_from_user and result.suggested_title and result.suggested_title != DEFAULT_TITLE:
            self.name = result.suggested_title
        self.warnings.extend(result.warnings)
        return result

    def _merge(self, result: DetectionResult) -> None:
        for field in result.fields:
            merged = field.model_copy(update={
                "id": self._new_id("field"),
                "name": self._unique_name(field.name),
                "page_index": self.current_page,
            })
            self._fields[merged.name] = merged
        logger.info(f"[{self.ctx.workspace_id}] 合并识别字段 {len(result.fields)} 个，共 {len(self._fields)} 个")

    # ------------------------------------------------------------------
    # 字段调整
    # ------------------------------------------------------------------

    @property
    def fields(self) -> list[TemplateField]:
        return [f.model_copy(deep=True) for f in self._fields.values()]

    def fields_on_page(self, page_index: int) -> list[TemplateField]:
        return [f.model_copy(deep=True) for f in self._fields.values() if f.on_page(page_index)]

    def overlapping_fields(self) -> list[tuple[str, str]]:
        """同页区域相交的字段对（按字段顺序）"""
        placed = [f for f in self._fields.values() if f.rect is not None]
        pairs = []
        for i, a in enumerate(placed):
            for b in placed[i + 1:]:
                if a.page_index == b.page_index and a.rect.intersects(b.rect):
                    pairs.append((a.name, b.name))
        return pairs

    def add_field(
        self,
        name: str,
        rect: BoundingBox | None = None,
        field_type: FieldType = FieldType.TEXT,
        category: FieldCategory = FieldCategory.DYNAMIC,
        required: bool = False,
        logical: bool = False,
    ) -> TemplateField:
        """手动新增字段（默认置于当前页中部）"""
        self._edit()
        name = self._check_name(name)
        field = TemplateField(
            id=self._new_id("manual"),
            name=name,
            type=field_type,
            category=category,
            required=required,
            rect=None if logical else (rect or DEFAULT_MANUAL_RECT),
            style=self.profile.manual_field_style.model_copy(),
            page_index=None if logical else self.current_page,
        )
        self._fields[name] = field
        return field.model_copy(deep=True)

    def rename_field(self, old_name: str, new_name: str) -> TemplateField:
        self._edit()
        field = self._get(old_name)
        new_name = self._check_name(new_name, allow=old_name)
        # 保持字段顺序
        self._fields = {
            (new_name if k == old_name else k): (
                field.model_copy(update={"name": new_name}) if k == old_name else v
            )
            for k, v in self._fields.items()
        }
        return self._fields[new_name].model_copy(deep=True)

    def retype_field(
        self, name: str, field_type: FieldType, options: list[str] | None = None
    ) -> TemplateField:
        self._edit()
        field = self._get(name)
        if options is not None and field_type != FieldType.DROPDOWN:
            raise ValidationError("只有下拉类型可以设置选项", issues=[f"字段 {name} 不是下拉类型"])
        field.type = field_type
        field.options = [o for o in options if o.strip()] if options else None
        return field.model_copy(deep=True)

    def set_rect(self, name: str, rect: BoundingBox | dict[str, Any]) -> TemplateField:
        """按归一化坐标重新定位"""
        self._edit()
        field = self._get(name)
        try:
            field.rect = rect if isinstance(rect, BoundingBox) else BoundingBox.model_validate(rect)
        except PydanticValidationError as e:
            raise ValidationError(
                "坐标无效", issues=[f"{name}: {err['msg']}" for err in e.errors()]
            ) from e
        if field.page_index is None:
            field.page_index = self.current_page
        return field.model_copy(deep=True)

    def set_pixel_rect(
        self, name: str, left: float, top: float, right: float, bottom: float
    ) -> TemplateField:
        """按当前页母版像素坐标重新定位"""
        page = self.current_raster
        return self.set_rect(name, from_pixel_box(left, top, right, bottom, page.width, page.height))

    def update_field(self, name: str, **changes: Any) -> TemplateField:
        """修改必填/默认值/类别/样式"""
        self._edit()
        field = self._get(name)
        allowed = {"required", "default_value", "category", "style"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError("不支持的修改项", issues=[f"不支持的修改项: {k}" for k in sorted(unknown)])
        data = field.model_dump()
        data.update(changes)
        try:
            updated = TemplateField.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                "字段修改无效", issues=[f"{name}: {err['msg']}" for err in e.errors()]
            ) from e
        self._fields[name] = updated
        return updated.model_copy(deep=True)

    def remove_field(self, name: str) -> None:
        self._edit()
        self._get(name)
        del self._fields[name]

    def set_name(self, name: str) -> None:
        self._require(*_EDITABLE)
        self.name = name.strip()
        self._name_from_user = True

    def _edit(self) -> None:
        """编辑前检查状态（预览中编辑即进入调整）"""
        self._require(*_EDITABLE)
        if self.state == AuthoringState.PREVIEW:
            self._transition(AuthoringState.REFINE)

    def _get(self, name: str) -> TemplateField:
        field = self._fields.get(name)
        if field is None:
            raise ValidationError("字段不存在", issues=[f"字段不存在: {name}"])
        return field

    def _check_name(self, name: str, allow: str | None = None) -> str:
        name = name.strip()
        if not name:
            raise ValidationError("字段名不能为空", issues=["字段名不能为空"])
        if name in self._fields and name != allow:
            raise ValidationError("字段名重复", issues=[f"字段名重复: {name}"])
        return name

    def _unique_name(self, name: str) -> str:
        if name not in self._fields:
            return name
        n = 2
        while f"{name}_{n}" in self._fields:
            n += 1
        return f"{name}_{n}"

    def _new_id(self, prefix: str) -> str:
        self._id_seq += 1
        return f"{prefix}-{self._id_seq}-{uuid.uuid4().hex[:6]}"

    # ------------------------------------------------------------------
    # 预览
    # ------------------------------------------------------------------

    def draft(self) -> DocumentTemplate:
        """当前草稿（未持久化）"""
        self._require(*_EDITABLE, AuthoringState.SCANNING)
        return DocumentTemplate(
            id="draft",
            name=self.name or DEFAULT_TITLE,
            fidelity_image=encode_data_uri(self._pages[0].master_bytes, self._pages[0].master_mime),
            fields=self.fields,
        )

    def preview_html(self, focused_field: str | None = None) -> str:
        """当前页的交互预览（字段显示为占位符）"""
        page = self.current_raster
        renderer = OverlayRenderer(self.profile)
        overlay = renderer.build_overlay(
            self.draft(), {}, focused_field=focused_field, page_index=self.current_page
        )
        return renderer.render_html(encode_data_uri(page.master_bytes, page.master_mime), overlay)

    # ------------------------------------------------------------------
    # 保存与取消
    # ------------------------------------------------------------------

    def save(
        self,
        name: str | None = None,
        description: str = "",
        category: str = "General",
        sub_category: str | None = None,
        tags: list[str] | None = None,
        content: str = "",
    ) -> DocumentTemplate:
        """校验并保存为版本1"""
        self._require(AuthoringState.REFINE)
        if name is not None:
            self.name = name.strip()

        issues: list[str] = []
        if not self.name or not self.name.strip():
            issues.append("模板名称不能为空")
        if issues:
            raise ValidationError("模板校验未通过", issues=issues)
        for a, b in self.overlapping_fields():
            logger.warning(f"[{self.ctx.workspace_id}] 字段区域重叠: {a} / {b}")

        first = self._page(0)
        template = DocumentTemplate(
            id=self.store.new_id(),
            name=self.name,
            description=description,
            category=category,
            sub_category=sub_category,
            tags=tags or [],
            content=content,
            fidelity_image=encode_data_uri(first.master_bytes, first.master_mime),
            fidelity_master=encode_data_uri(self.source_bytes, self.source_mime),
            fields=self.fields,
            version=1,
            history=[make_history_entry(1, self.ctx.author, INITIAL_CHANGES)],
        )

        self.cancel_token.raise_if_cancelled()
        saved = self.store.add(self.ctx, template)
        self._transition(AuthoringState.SAVED)
        self.saved_template = saved
        logger.info(f"[{self.ctx.workspace_id}] 模板制作完成: {saved.name} ({len(saved.fields)} 个字段)")
        return saved

    def cancel(self) -> None:
        """放弃制作（丢弃全部内容）"""
        if self.state in (AuthoringState.SAVED, AuthoringState.CANCELLED):
            raise StateTransitionError(f"当前状态 {self.state.value} 不能取消")
        self.cancel_token.cancel()
        self._transition(AuthoringState.CANCELLED)
        self._discard()
        logger.info(f"[{self.ctx.workspace_id}] 模板制作已放弃")
