"""
响应收敛 - 识别服务的松散JSON → 严格的字段/边界框结构

识别服务返回的JSON形态不固定（根为对象或数组、name/variableName、
rect为对象或四元数组、坐标为浮点或越界），在网关边界统一解析：
能修正的修正，不能修正的丢弃并记录告警，原始数据不越过此边界。

测试要点：
- test_coerce_box_float_and_swapped: 浮点/颠倒坐标修正
- test_coerce_box_degenerate_rejected: 零面积框丢弃
- test_field_name_aliases: variableName/label 兼容
- test_duplicate_names_suffixed: 重名加后缀
- test_coerce_style_rejects_invalid_values: 不合法样式值丢弃
"""

from __future__ import annotations

import math
import re
from typing import Any

from ..config import RenderProfile
from ..models import (
    NORMALIZED_MAX,
    BoundingBox,
    DetectionResult,
    FieldCategory,
    FieldStyle,
    FieldType,
    TemplateField,
)
from ..render.fonts import is_color, is_font_size

_BOX_KEYS = ("ymin", "xmin", "ymax", "xmax")
_STYLE_KEYS = {
    "color": "color",
    "fontSize": "font_size",
    "font_size": "font_size",
    "fontWeight": "font_weight",
    "font_weight": "font_weight",
    "fontFamily": "font_family",
    "font_family": "font_family",
    "textAlign": "text_align",
    "text_align": "text_align",
}
_ALIGNS = {"left", "center", "right"}
_WEIGHTS = {"normal", "bold", "bolder", "lighter"}
_FAMILY_PATTERN = re.compile(r"^[\w\s,'.-]+$")

# 样式值会写入 style 属性，不合法的值直接丢弃
_STYLE_CHECKS = {
    "color": is_color,
    "font_size": is_font_size,
    "font_weight": lambda v: v.lower() in _WEIGHTS or v.isdigit(),
    "font_family": lambda v: bool(_FAMILY_PATTERN.match(v)),
}


def parse_detection_payload(
    data: Any,
    profile: RenderProfile,
    page_index: int = 0,
    id_prefix: str = "field",
) -> DetectionResult:
    """解析字段检测响应"""
    if isinstance(data, list):
        raw_fields, title = data, None
    elif isinstance(data, dict):
        raw_fields = data.get("fields")
        title = data.get("suggestedTitle") or data.get("title")
        if raw_fields is None:
            raw_fields = []
        elif not isinstance(raw_fields, list):
            raise ValueError("fields 不是数组")
    else:
        raise ValueError(f"响应根节点类型无效: {type(data).__name__}")

    warnings: list[str] = []
    fields: list[TemplateField] = []
    used: set[str] = set()

    for idx, raw in enumerate(raw_fields):
        if not isinstance(raw, dict):
            warnings.append(f"第{idx + 1}项不是对象，已丢弃")
            continue

        name = _coerce_name(raw)
        if not name:
            warnings.append(f"第{idx + 1}项缺少字段名，已丢弃")
            continue

        rect = coerce_box(raw.get("rect") or raw.get("box") or raw.get("bbox"))
        if rect is None:
            warnings.append(f"字段 {name} 坐标无效，已丢弃")
            continue

        unique = _unique_name(name, used)
        if unique != name:
            warnings.append(f"字段名重复，{name} 重命名为 {unique}")
        used.add(unique)

        field_type = profile.resolve_type(_as_str(raw.get("type"))) or FieldType.TEXT.value
        fields.append(
            TemplateField(
                id=f"{id_prefix}-{page_index}-{idx}",
                name=unique,
                type=FieldType(field_type),
                category=FieldCategory.DYNAMIC,
                required=True,
                rect=rect,
                style=coerce_style(raw.get("style")),
                page_index=page_index,
            )
        )

    suggested = _as_str(title)
    return DetectionResult(
        suggested_title=suggested.strip() if suggested and suggested.strip() else "Untitled",
        fields=fields,
        warnings=warnings,
    )


def coerce_box(raw: Any) -> BoundingBox | None:
    """坐标收敛：取整、截断到0-1000、修正颠倒；零面积返回None"""
    if isinstance(raw, dict):
        values = [raw.get(k) for k in _BOX_KEYS]
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        values = list(raw)
    else:
        return None

    nums: list[int] = []
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return None
        try:
            f = float(v)
        except ValueError:
            return None
        if not math.isfinite(f):
            return None
        nums.append(max(0, min(NORMALIZED_MAX, round(f))))

    ymin, xmin, ymax, xmax = nums
    ymin, ymax = sorted((ymin, ymax))
    xmin, xmax = sorted((xmin, xmax))
    if ymin == ymax or xmin == xmax:
        return None
    return BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)


def coerce_style(raw: Any) -> FieldStyle | None:
    """样式收敛：仅保留已知键且取值合法的字符串值"""
    if not isinstance(raw, dict):
        return None
    data: dict[str, str] = {}
    for key, value in raw.items():
        attr = _STYLE_KEYS.get(key)
        if attr is None or value is None or isinstance(value, (dict, list, bool)):
            continue
        text = f"{value:g}px" if attr == "font_size" and isinstance(value, (int, float)) else str(value).strip()
        if not text:
            continue
        if attr == "text_align":
            text = text.lower()
            if text not in _ALIGNS:
                continue
        elif not _STYLE_CHECKS[attr](text):
            continue
        data[attr] = text
    return FieldStyle(**data) if data else None


def _coerce_name(raw: dict[str, Any]) -> str | None:
    for key in ("name", "variableName", "label"):
        value = _as_str(raw.get(key))
        if value and value.strip():
            return value.strip()
    return None


def _unique_name(name: str, used: set[str]) -> str:
    if name not in used:
        return name
    n = 2
    while f"{name}_{n}" in used:
        n += 1
    return f"{name}_{n}"


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None
