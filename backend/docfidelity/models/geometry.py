"""
几何模型 - 归一化边界框/渲染矩形/字段样式

归一化坐标空间：0-1000 × 0-1000，与源文件实际像素尺寸无关
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

NORMALIZED_MAX = 1000


class BoundingBox(BaseModel):
    """归一化边界框（0-1000）"""
    ymin: int = Field(..., ge=0, le=NORMALIZED_MAX)
    xmin: int = Field(..., ge=0, le=NORMALIZED_MAX)
    ymax: int = Field(..., ge=0, le=NORMALIZED_MAX)
    xmax: int = Field(..., ge=0, le=NORMALIZED_MAX)

    @model_validator(mode="after")
    def _check_order(self) -> BoundingBox:
        if self.xmin >= self.xmax:
            raise ValueError(f"xmin({self.xmin}) 必须小于 xmax({self.xmax})")
        if self.ymin >= self.ymax:
            raise ValueError(f"ymin({self.ymin}) 必须小于 ymax({self.ymax})")
        return self

    @property
    def width(self) -> int:
        return self.xmax - self.xmin

    @property
    def height(self) -> int:
        return self.ymax - self.ymin

    def intersects(self, other: BoundingBox) -> bool:
        """判断是否相交"""
        return not (
            self.xmax <= other.xmin or
            self.xmin >= other.xmax or
            self.ymax <= other.ymin or
            self.ymin >= other.ymax
        )


class RenderRect(BaseModel):
    """渲染矩形（相对容器的百分比）"""
    top: float
    left: float
    width: float
    height: float

    def to_css(self) -> str:
        return (
            f"top:{self.top:g}%;left:{self.left:g}%;"
            f"width:{self.width:g}%;height:{self.height:g}%"
        )


class FieldStyle(BaseModel):
    """字段样式（从周边排版捕获，均可选）"""
    color: str | None = None
    font_size: str | None = None
    font_weight: str | None = None
    font_family: str | None = None
    text_align: Literal["left", "center", "right"] | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def merged_over(self, base: FieldStyle) -> FieldStyle:
        """以base为底，覆盖本样式中已设置的值"""
        data = base.model_dump(exclude_none=True)
        data.update(self.model_dump(exclude_none=True))
        return FieldStyle(**data)
