"""
渲染模块 - 坐标换算/叠加渲染/文本替换

子模块：
- coordinates: 归一化坐标 ↔ 百分比/像素
- overlay: 母版图叠加渲染（HTML预览 + Pillow导出）
- text_mode: {{fieldName}} 文本替换
- fonts: 字号/字重/颜色/字体解析
- datauri: data URI 编解码
"""

from .coordinates import from_pixel_box, to_pixel_box, to_render_rect
from .datauri import decode_data_uri, encode_data_uri
from .overlay import (
    Overlay,
    OverlayNode,
    OverlayRenderer,
    RenderTarget,
    base_image_from_template,
    encode_pages,
    open_image,
)
from .text_mode import interpolate, render_text_document

__all__ = [
    "to_render_rect",
    "to_pixel_box",
    "from_pixel_box",
    "encode_data_uri",
    "decode_data_uri",
    "Overlay",
    "OverlayNode",
    "OverlayRenderer",
    "RenderTarget",
    "base_image_from_template",
    "encode_pages",
    "open_image",
    "interpolate",
    "render_text_document",
]
