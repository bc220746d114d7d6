"""
叠加渲染器 - 在母版图像上按归一化矩形合成字段文本

职责：
1. 生成叠加节点（百分比矩形 + 文本 + 样式），同一输入输出恒定
2. 交互预览：空值显示 [字段名] 占位符（淡色斜体），可高亮当前字段
3. 导出渲染：占位符完全不出现；Pillow 合成 PNG/PDF
4. HTML 预览文档（母版图与叠加层位于同一百分比容器）

依赖：
- Pillow: 图像合成
- render_profile.yaml: 兜底样式/占位符样式/字体映射

测试要点：
- test_overlay_position: 矩形换算为百分比
- test_placeholder_interactive_only: 占位符仅交互预览出现
- test_render_idempotent: 重复渲染字节一致
- test_fallback_style: 未捕获样式时的兜底
"""

from __future__ import annotations

import html
import io
import logging
import time
from enum import Enum

from PIL import Image, ImageDraw, UnidentifiedImageError
from pydantic import BaseModel, Field

from ..config import RenderProfile, load_render_profile
from ..interfaces import RenderError
from ..models import BoundingBox, DocumentTemplate, FieldStyle, RenderRect
from .coordinates import to_pixel_box, to_render_rect
from .datauri import decode_data_uri
from .fonts import is_bold, load_font, parse_color, resolve_font_size

logger = logging.getLogger(__name__)

# PDF 元数据时间固定，保证同一输入输出字节一致
_PDF_FIXED_DATE = time.gmtime(0)


class RenderTarget(str, Enum):
    """渲染目标"""
    INTERACTIVE = "interactive"
    EXPORT = "export"


class OverlayNode(BaseModel):
    """单个叠加文本节点"""
    field_name: str
    box: BoundingBox
    rect: RenderRect
    text: str
    style: FieldStyle
    is_placeholder: bool = False
    focused: bool = False


class Overlay(BaseModel):
    """单页叠加结果"""
    page_index: int = 0
    target: RenderTarget = RenderTarget.INTERACTIVE
    nodes: list[OverlayNode] = Field(default_factory=list)


class OverlayRenderer:
    """叠加渲染器实现"""

    def __init__(self, profile: RenderProfile | None = None):
        self.profile = profile or load_render_profile()

    def build_overlay(
        self,
        template: DocumentTemplate,
        values: dict[str, str],
        focused_field: str | None = None,
        target: RenderTarget = RenderTarget.INTERACTIVE,
        page_index: int = 0,
    ) -> Overlay:
        """生成叠加节点（按字段定义顺序）"""
        nodes: list[OverlayNode] = []
        for field in template.fields:
            if field.rect is None or not field.on_page(page_index):
                continue

            value = values.get(field.name) or ""
            is_placeholder = not value.strip()
            if is_placeholder and target == RenderTarget.EXPORT:
                continue

            style = (field.style or FieldStyle()).merged_over(self.profile.default_style)
            nodes.append(
                OverlayNode(
                    field_name=field.name,
                    box=field.rect,
                    rect=to_render_rect(field.rect),
                    text=f"[{field.name}]" if is_placeholder else value,
                    style=style,
                    is_placeholder=is_placeholder,
                    focused=field.name == focused_field,
                )
            )
        return Overlay(page_index=page_index, target=target, nodes=nodes)

    # ------------------------------------------------------------------
    # HTML 预览
    # ------------------------------------------------------------------

    def render_html(self, base_image_uri: str, overlay: Overlay) -> str:
        """生成HTML预览（母版图为底，叠加层绝对定位）"""
        parts = [
            '<div class="fidelity-page" style="position:relative;width:100%">',
            f'<img src="{html.escape(base_image_uri, quote=True)}" '
            'style="display:block;width:100%;height:auto" alt="Fidelity Master"/>',
        ]
        for node in overlay.nodes:
            parts.append(self._node_html(node, overlay.target))
        parts.append("</div>")
        return "\n".join(parts)

    def _node_html(self, node: OverlayNode, target: RenderTarget) -> str:
        style = node.style
        align = style.text_align or "left"
        justify = {"center": "center", "right": "flex-end"}.get(align, "flex-start")
        css = [
            "position:absolute",
            node.rect.to_css(),
            "display:flex",
            "align-items:center",
            f"justify-content:{justify}",
            f"text-align:{align}",
            f"font-size:{style.font_size}",
            f"font-weight:{style.font_weight}",
            f"color:{style.color}",
            "white-space:nowrap",
        ]
        if style.font_family:
            css.append(f"font-family:{style.font_family}")
        if node.focused and target == RenderTarget.INTERACTIVE:
            css.append(f"outline:2px solid {self.profile.focus_outline_color}")

        text = html.escape(node.text)
        if node.is_placeholder:
            ph = self.profile.placeholder
            span_css = f"color:{ph.color}" + (";font-style:italic" if ph.italic else "")
            text = f'<span class="placeholder" style="{html.escape(span_css, quote=True)}">{text}</span>'
        return (
            f'<div class="field" data-field="{html.escape(node.field_name, quote=True)}" '
            f'style="{html.escape(";".join(css), quote=True)}">{text}</div>'
        )

    # ------------------------------------------------------------------
    # 栅格化导出
    # ------------------------------------------------------------------

    def rasterize(
        self,
        base_image: bytes,
        overlay: Overlay,
        fmt: str = "png",
    ) -> bytes:
        """在母版图像上合成叠加文本，输出PNG/PDF字节"""
        page = self.compose(base_image, overlay)
        return encode_pages([page], fmt)

    def compose(self, base_image: bytes, overlay: Overlay) -> Image.Image:
        """合成单页图像"""
        base = open_image(base_image).convert("RGBA")
        layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        width, height = base.size

        for node in overlay.nodes:
            self._draw_node(draw, node, width, height)

        return Image.alpha_composite(base, layer)

    def _draw_node(self, draw: ImageDraw.ImageDraw, node: OverlayNode, width: int, height: int) -> None:
        style = node.style
        left, top, right, bottom = to_pixel_box(node.box, width, height)
        size = resolve_font_size(
            style.font_size,
            image_width=width,
            reference_width=self.profile.reference_width,
            fallback=self.profile.default_style.font_size or "1.1vw",
        )
        bold = is_bold(style.font_weight)
        font, fake_bold = load_font(self.profile, style.font_family, bold, size)
        if node.is_placeholder:
            color = parse_color(self.profile.placeholder.color)
        else:
            color = parse_color(style.color, parse_color(self.profile.default_style.color))
        stroke = max(1, size // 28) if fake_bold else 0

        x0, y0, x1, y1 = draw.textbbox((0, 0), node.text, font=font, stroke_width=stroke)
        text_w, text_h = x1 - x0, y1 - y0
        align = style.text_align or "left"
        if align == "center":
            x = left + (right - left - text_w) / 2
        elif align == "right":
            x = right - text_w
        else:
            x = left
        y = top + (bottom - top - text_h) / 2

        draw.text(
            (round(x - x0), round(y - y0)),
            node.text,
            font=font,
            fill=color,
            stroke_width=stroke,
            stroke_fill=color,
        )
        if node.focused and node.is_placeholder:
            draw.rectangle((left, top, right, bottom), outline=parse_color(self.profile.focus_outline_color))


def open_image(data: bytes) -> Image.Image:
    """打开图像字节（失败抛 RenderError）"""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise RenderError(f"图像无法读取: {e}") from e
    return img


def encode_pages(pages: list[Image.Image], fmt: str = "png") -> bytes:
    """页面图像 → PNG（单页）或 PDF（可多页）字节"""
    fmt = fmt.lower()
    buf = io.BytesIO()
    if fmt == "pdf":
        rgb = [p.convert("RGB") for p in pages]
        rgb[0].save(
            buf,
            format="PDF",
            save_all=True,
            append_images=rgb[1:],
            resolution=144.0,
            creationDate=_PDF_FIXED_DATE,
            modDate=_PDF_FIXED_DATE,
        )
    elif fmt == "png":
        if len(pages) != 1:
            raise RenderError("PNG 只能导出单页，多页文档请使用 PDF")
        pages[0].save(buf, format="PNG")
    else:
        raise RenderError(f"不支持的导出格式: {fmt}")
    return buf.getvalue()


def base_image_from_template(template: DocumentTemplate) -> bytes:
    """取模板母版页图像字节"""
    if not template.fidelity_image:
        raise RenderError(f"模板没有母版图像: {template.name}")
    data, _ = decode_data_uri(template.fidelity_image)
    return data
