"""
坐标模型 - 归一化坐标（0-1000）与渲染坐标之间的换算

职责：
1. 归一化边界框 → 容器百分比矩形（value / 10）
2. 归一化边界框 → 指定尺寸图像上的像素框（导出栅格化）
3. 像素框 → 归一化边界框（手动定义字段）

母版图与叠加层处于同一个百分比容器中，同一字段定义在任何显示尺寸/打印DPI
下都落在相同的相对位置。

测试要点：
- test_width_height_exact: 宽高 = 差值 / 10
- test_full_page_box: 0-1000 → 0-100%
- test_pixel_roundtrip: 像素换算
"""

from __future__ import annotations

from ..models import NORMALIZED_MAX, BoundingBox, RenderRect

PERCENT_DIVISOR = NORMALIZED_MAX / 100


def to_render_rect(box: BoundingBox) -> RenderRect:
    """归一化边界框 → 百分比矩形"""
    return RenderRect(
        top=box.ymin / PERCENT_DIVISOR,
        left=box.xmin / PERCENT_DIVISOR,
        width=(box.xmax - box.xmin) / PERCENT_DIVISOR,
        height=(box.ymax - box.ymin) / PERCENT_DIVISOR,
    )


def to_pixel_box(box: BoundingBox, width: int, height: int) -> tuple[int, int, int, int]:
    """归一化边界框 → 像素框 (left, top, right, bottom)"""
    return (
        round(box.xmin * width / NORMALIZED_MAX),
        round(box.ymin * height / NORMALIZED_MAX),
        round(box.xmax * width / NORMALIZED_MAX),
        round(box.ymax * height / NORMALIZED_MAX),
    )


def from_pixel_box(
    left: float, top: float, right: float, bottom: float, width: int, height: int
) -> BoundingBox:
    """像素框 → 归一化边界框（越界截断，退化框至少保留1个单位）"""
    if width <= 0 or height <= 0:
        raise ValueError(f"图像尺寸无效: {width}x{height}")

    def norm(v: float, size: int) -> int:
        return clamp(round(v * NORMALIZED_MAX / size))

    xmin, xmax = sorted((norm(left, width), norm(right, width)))
    ymin, ymax = sorted((norm(top, height), norm(bottom, height)))
    xmin, xmax = _widen(xmin, xmax)
    ymin, ymax = _widen(ymin, ymax)
    return BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)


def clamp(v: int) -> int:
    return max(0, min(NORMALIZED_MAX, v))


def _widen(lo: int, hi: int) -> tuple[int, int]:
    if lo < hi:
        return lo, hi
    if hi < NORMALIZED_MAX:
        return lo, hi + 1
    return lo - 1, hi
