"""
文档渲染 - 单份/批量生成共用的模板 + 取值 → 文档字节

职责：
1. 母版模式：按页合成叠加层，单页可导出 PNG/PDF，多页强制 PDF
2. 文本模式（无母版图）：占位符替换生成 Word 可打开的 .doc
3. 多页母版：第1页取 fidelityImage，其余页由 fidelityMaster 按需渲染并缓存

测试要点：
- test_multipage_forces_pdf: 多页母版导出为PDF
- test_text_mode_doc: 文本模式输出 .doc
- test_safe_name: 文件名安全化
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel

from ..authoring.rasterizer import Rasterizer, is_pdf
from ..interfaces import RenderError
from ..models import DocumentTemplate
from ..render import (
    OverlayRenderer,
    RenderTarget,
    base_image_from_template,
    decode_data_uri,
    encode_pages,
    render_text_document,
)

logger = logging.getLogger(__name__)

# 导出格式 → (扩展名, MIME)
FORMATS: dict[str, tuple[str, str]] = {
    "png": ("png", "image/png"),
    "pdf": ("pdf", "application/pdf"),
    "doc": ("doc", "application/msword"),
}


class GeneratedDocument(BaseModel):
    """生成的单份文档"""
    filename: str
    extension: str
    mime_type: str
    data: bytes
    page_count: int = 1


def safe_name(name: str) -> str:
    """模板名 → 文件名安全片段"""
    cleaned = re.sub(r"[^\w\-]+", "_", name.strip()).strip("_")
    return cleaned or "document"


class PageImageResolver:
    """模板各页母版图像（按需渲染，会话内缓存）"""

    def __init__(self, template: DocumentTemplate, rasterizer: Rasterizer):
        self.template = template
        self.rasterizer = rasterizer
        self._cache: dict[int, bytes] = {}
        self._master: tuple[bytes, str] | None = None
        self._page_count: int | None = None

    def _master_source(self) -> tuple[bytes, str] | None:
        if self._master is None and self.template.fidelity_master:
            self._master = decode_data_uri(self.template.fidelity_master)
        return self._master

    @property
    def page_count(self) -> int:
        if self._page_count is None:
            master = self._master_source()
            if master is not None and is_pdf(master[1]):
                self._page_count = self.rasterizer.page_count(*master)
            else:
                self._page_count = 1
        return self._page_count

    def page_image(self, page_index: int) -> bytes:
        if page_index not in self._cache:
            if page_index == 0:
                self._cache[0] = base_image_from_template(self.template)
            else:
                master = self._master_source()
                if master is None or not 0 < page_index < self.page_count:
                    raise RenderError(f"模板没有第 {page_index + 1} 页")
                data, mime = master
                self._cache[page_index] = self.rasterizer.rasterize(
                    data, mime, page_index=page_index
                ).master_bytes
        return self._cache[page_index]


class DocumentRenderer:
    """按模板渲染文档"""

    def __init__(
        self,
        template: DocumentTemplate,
        renderer: OverlayRenderer,
        rasterizer: Rasterizer,
    ):
        self.template = template
        self.renderer = renderer
        self.pages = PageImageResolver(template, rasterizer)

    @property
    def text_mode(self) -> bool:
        return not self.template.has_fidelity_image

    def resolve_format(self, fmt: str | None) -> str:
        """确定导出格式（文本模式恒为doc，多页恒为pdf）"""
        if self.text_mode:
            return "doc"
        fmt = (fmt or "png").lower()
        if fmt not in ("png", "pdf"):
            raise RenderError(f"不支持的导出格式: {fmt}")
        if self.pages.page_count > 1:
            return "pdf"
        return fmt

    def render(self, values: dict[str, str], fmt: str | None = None) -> GeneratedDocument:
        """渲染一份文档（导出渲染，不含占位符）"""
        fmt = self.resolve_format(fmt)
        extension, mime_type = FORMATS[fmt]

        if fmt == "doc":
            data = render_text_document(self.template, values)
            page_count = 1
        else:
            images = []
            for page_index in range(self.pages.page_count):
                overlay = self.renderer.build_overlay(
                    self.template, values, target=RenderTarget.EXPORT, page_index=page_index
                )
                images.append(self.renderer.compose(self.pages.page_image(page_index), overlay))
            data = encode_pages(images, fmt)
            page_count = len(images)

        return GeneratedDocument(
            filename=f"{safe_name(self.template.name)}.{extension}",
            extension=extension,
            mime_type=mime_type,
            data=data,
            page_count=page_count,
        )
