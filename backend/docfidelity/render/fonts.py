"""
字体与样式解析 - CSS风格样式值 → Pillow 绘制参数

职责：
1. 字号解析（vw/px/pt/em，按图像宽度缩放）
2. 字重判定（bold/600+）
3. 颜色解析（#hex/rgb()/颜色名）
4. 字体加载（配置的字体文件优先，Pillow内置字体兜底）
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from PIL import ImageColor, ImageFont

from ..config import RenderProfile

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"^\s*(?:calc\()?\s*([0-9]*\.?[0-9]+)\s*(vw|px|pt|rem|em)?\s*\)?\s*$", re.I)

DEFAULT_COLOR = (15, 23, 42, 255)


def resolve_font_size(
    font_size: str | None,
    image_width: int,
    reference_width: int,
    fallback: str = "1.1vw",
) -> int:
    """CSS字号 → 像素（相对图像宽度）"""
    for candidate in (font_size, fallback):
        if not candidate:
            continue
        m = _SIZE_PATTERN.match(candidate)
        if not m:
            logger.debug(f"无法解析字号: {candidate}")
            continue
        value = float(m.group(1))
        unit = (m.group(2) or "px").lower()
        scale = image_width / reference_width
        if unit == "vw":
            px = value * image_width / 100
        elif unit == "pt":
            px = value * 4 / 3 * scale
        elif unit in ("em", "rem"):
            px = value * 16 * scale
        else:
            px = value * scale
        return max(1, round(px))
    return max(1, round(image_width * 0.011))


def is_font_size(value: str) -> bool:
    """是否为可解析的字号写法"""
    return bool(_SIZE_PATTERN.match(value))


def is_color(value: str) -> bool:
    """是否为 Pillow 可解析的颜色"""
    try:
        ImageColor.getrgb(value)
    except ValueError:
        return False
    return True


def is_bold(font_weight: str | None) -> bool:
    """字重判定"""
    if not font_weight:
        return False
    w = font_weight.strip().lower()
    if w in ("bold", "bolder"):
        return True
    return w.isdigit() and int(w) >= 600


def parse_color(color: str | None, default: tuple[int, int, int, int] = DEFAULT_COLOR) -> tuple[int, int, int, int]:
    """颜色 → RGBA"""
    if not color:
        return default
    try:
        rgb = ImageColor.getrgb(color.strip())
    except ValueError:
        logger.debug(f"无法解析颜色: {color}")
        return default
    if len(rgb) == 3:
        return (*rgb, 255)
    return rgb


def load_font(
    profile: RenderProfile, family: str | None, bold: bool, size: int
) -> tuple[ImageFont.FreeTypeFont | ImageFont.ImageFont, bool]:
    """
    加载字体

    Returns:
        (字体, 是否需要描边模拟加粗)
    """
    font_file = profile.get_font_file(family, bold=bold)
    if font_file:
        try:
            font = _truetype(font_file, size)
            has_bold_face = bool(bold and profile.get_font_file(family, bold=True) != profile.get_font_file(family))
            return font, bold and not has_bold_face
        except OSError:
            logger.warning(f"字体文件不可用，改用内置字体: {font_file}")
    return _default_font(size), bold


@lru_cache(maxsize=64)
def _truetype(path: str, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(path, size)


@lru_cache(maxsize=64)
def _default_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    return ImageFont.load_default(size=size)
