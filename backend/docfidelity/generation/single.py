"""
单份文档生成 - 填写字段值、预览、AI填充与导出

职责：
1. 会话开始时对模板做快照，之后的模板编辑不影响本会话
2. 字段值以默认值初始化
3. 交互预览（空值显示占位符，可高亮当前字段）
4. AI填充：只针对 DYNAMIC 字段，结果合并进取值，失败不影响手动输入
5. 导出前校验必填字段，逐个列出缺失字段名

测试要点：
- test_values_from_defaults: 默认值初始化
- test_snapshot_isolated: 快照与仓库隔离
- test_export_missing_required: 缺失必填列出字段名
- test_fill_with_ai_merges: AI填充合并
- test_preview_placeholder: 预览占位符
"""

from __future__ import annotations

import logging

from ..authoring.rasterizer import Rasterizer
from ..config import RuntimeConfig, get_config, load_render_profile
from ..interfaces import IFormFiller, ValidationError
from ..models import DocumentTemplate, WorkspaceContext
from ..render import OverlayRenderer, encode_data_uri, interpolate
from ..store import TemplateStore
from .document import DocumentRenderer, GeneratedDocument

logger = logging.getLogger(__name__)


class GenerationSession:
    """单份文档生成会话"""

    def __init__(
        self,
        ctx: WorkspaceContext,
        template: DocumentTemplate,
        store: TemplateStore | None = None,
        filler: IFormFiller | None = None,
        renderer: OverlayRenderer | None = None,
        rasterizer: Rasterizer | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.ctx = ctx
        self.config = config or get_config()
        self.template = template.model_copy(deep=True)  # 快照
        self.store = store
        self.filler = filler
        self.renderer = renderer or OverlayRenderer(load_render_profile(self.config.render_profile_path))
        self.document = DocumentRenderer(
            self.template, self.renderer, rasterizer or Rasterizer(self.config)
        )
        self.values: dict[str, str] = {
            f.name: f.default_value or "" for f in self.template.fields
        }

    # ------------------------------------------------------------------
    # 取值
    # ------------------------------------------------------------------

    def set_value(self, name: str, value: str | None) -> None:
        if name not in self.values:
            raise ValidationError("字段不存在", issues=[f"字段不存在: {name}"])
        self.values[name] = "" if value is None else str(value)

    def set_values(self, values: dict[str, str | None]) -> None:
        for name, value in values.items():
            self.set_value(name, value)

    def missing_required(self) -> list[str]:
        """未填写的必填字段（按字段顺序）"""
        return [
            f.name for f in self.template.fields
            if f.required and not self.values.get(f.name, "").strip()
        ]

    def fill_with_ai(self, instruction: str) -> dict[str, str]:
        """按指令请求AI建议值并合并（失败返回空结果）"""
        if self.filler is None:
            return {}
        suggestions = self.filler.fill_form(
            self.template.name, self.template.dynamic_fields(), instruction
        )
        for name, value in suggestions.items():
            if name in self.values:
                self.values[name] = value
        logger.info(f"[{self.template.name}] AI填充 {len(suggestions)} 个字段")
        return suggestions

    # ------------------------------------------------------------------
    # 预览与导出
    # ------------------------------------------------------------------

    def preview_html(self, focused_field: str | None = None, page_index: int = 0) -> str:
        """交互预览"""
        if self.document.text_mode:
            body = interpolate(self.template.content, self.values)
            return f'<div class="text-document">{body}</div>'

        overlay = self.renderer.build_overlay(
            self.template, self.values, focused_field=focused_field, page_index=page_index
        )
        if page_index == 0:
            base_uri = self.template.fidelity_image
        else:
            base_uri = encode_data_uri(self.document.pages.page_image(page_index), "image/png")
        return self.renderer.render_html(base_uri, overlay)

    def export(self, fmt: str | None = None) -> GeneratedDocument:
        """导出文档（缺失必填时抛 ValidationError）"""
        missing = self.missing_required()
        if missing:
            raise ValidationError(
                f"缺少必填字段: {', '.join(missing)}",
                issues=[f"缺少必填字段: {n}" for n in missing],
                missing_fields=missing,
            )

        document = self.document.render(self.values, fmt or self.config.bulk.export_format)
        if self.store is not None:
            self.store.record_usage(self.ctx, self.template.id)
        logger.info(f"[{self.template.name}] 文档已导出: {document.filename}")
        return document
