"""
栅格化器 - 源文件（PDF/图片）转母版图像与分析图

职责：
1. PDF 指定页按 master_scale 渲染为高清 PNG 母版
2. 图片源直接作为母版（保持原字节）
3. 由同一页面图像派生压缩 JPEG 分析图（最长边 analysis_max_dim）

依赖：
- pdfplumber: PDF 页面渲染
- Pillow: 图像缩放/编码

测试要点：
- test_rasterize_png: 图片源母版保持原字节
- test_rasterize_pdf_page: PDF 指定页渲染
- test_analysis_copy_downscaled: 分析图缩放且宽高比一致
- test_unreadable_source: 无法读取抛 RenderError
"""

from __future__ import annotations

import io
import logging

import pdfplumber
from PIL import Image

from ..config import RasterConfig, RuntimeConfig, get_config
from ..interfaces import IRasterizer, RenderError
from ..models import RasterPage
from ..render import open_image

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
PDF_BASE_DPI = 72


def is_pdf(mime_type: str) -> bool:
    return mime_type.lower() == PDF_MIME


class Rasterizer(IRasterizer):
    """栅格化器实现"""

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or get_config()

    @property
    def raster(self) -> RasterConfig:
        return self.config.raster

    def rasterize(self, data: bytes, mime_type: str, page_index: int = 0) -> RasterPage:
        """栅格化源文件的指定页"""
        if not data:
            raise RenderError("源文件为空")

        if is_pdf(mime_type):
            image, page_count = self._render_pdf_page(data, page_index)
            master_bytes = _encode(image, "PNG")
            master_mime = "image/png"
        elif mime_type.lower().startswith("image/"):
            if page_index != 0:
                raise RenderError(f"图片源只有一页: page_index={page_index}")
            image = open_image(data)
            page_count = 1
            master_bytes = data
            master_mime = mime_type.lower()
        else:
            raise RenderError(f"不支持的源文件类型: {mime_type}")

        analysis = self._analysis_copy(image)
        logger.info(
            f"栅格化完成: page={page_index + 1}/{page_count} "
            f"master={image.width}x{image.height} analysis={analysis.width}x{analysis.height}"
        )
        return RasterPage(
            page_index=page_index,
            page_count=page_count,
            master_bytes=master_bytes,
            master_mime=master_mime,
            width=image.width,
            height=image.height,
            analysis_bytes=_encode(analysis, "JPEG", quality=self.raster.analysis_quality),
            analysis_mime="image/jpeg",
            analysis_width=analysis.width,
            analysis_height=analysis.height,
        )

    def page_count(self, data: bytes, mime_type: str) -> int:
        """源文件页数（图片恒为1）"""
        if not is_pdf(mime_type):
            return 1
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                return len(pdf.pages)
        except Exception as e:
            raise RenderError(f"PDF 无法读取: {e}") from e

    def _render_pdf_page(self, data: bytes, page_index: int) -> tuple[Image.Image, int]:
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_count = len(pdf.pages)
                if not 0 <= page_index < page_count:
                    raise RenderError(f"页码超出范围: {page_index + 1}/{page_count}")
                page_image = pdf.pages[page_index].to_image(
                    resolution=PDF_BASE_DPI * self.raster.master_scale
                )
                image = page_image.original.convert("RGB")
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"PDF 无法读取: {e}") from e
        return image, page_count

    def _analysis_copy(self, image: Image.Image) -> Image.Image:
        """派生分析图（同一页面区域，仅缩放）"""
        copy = image.convert("RGB")
        max_dim = self.raster.analysis_max_dim
        if max(copy.size) > max_dim:
            copy.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
        return copy


def _encode(image: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    if fmt == "JPEG":
        image = image.convert("RGB")
    image.save(buf, format=fmt, **params)
    return buf.getvalue()
