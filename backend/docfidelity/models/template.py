"""
模板模型 - 模板/字段/版本历史/分类

JSON 序列化使用驼峰字段名（fidelityImage/defaultValue 等），
Python 侧使用下划线命名
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .geometry import BoundingBox, FieldStyle

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class FieldType(str, Enum):
    """字段类型"""
    TEXT = "TEXT"
    NUMBER = "NUMBER"
    DATE = "DATE"
    DROPDOWN = "DROPDOWN"


class FieldCategory(str, Enum):
    """字段类别"""
    DYNAMIC = "DYNAMIC"
    BRANDING = "BRANDING"


class TemplateField(BaseModel):
    """模板字段"""
    id: str
    name: str = Field(..., description="模板内唯一，作为插值键")
    type: FieldType = FieldType.TEXT
    category: FieldCategory = FieldCategory.DYNAMIC
    required: bool = False
    default_value: str | None = None
    options: list[str] | None = Field(None, description="DROPDOWN可选值")
    rect: BoundingBox | None = None
    style: FieldStyle | None = None
    page_index: int | None = Field(None, ge=0)

    model_config = _CAMEL

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("字段名不能为空")
        return v

    @property
    def is_logical(self) -> bool:
        """无rect的逻辑字段，仅用于文本替换模式"""
        return self.rect is None

    def on_page(self, page_index: int) -> bool:
        return (self.page_index or 0) == page_index


class VersionHistoryEntry(BaseModel):
    """版本历史（只追加，写入后不可变）"""
    id: str
    version: str
    date: datetime
    author: str
    changes: str

    model_config = {**_CAMEL, "frozen": True}


class DocumentTemplate(BaseModel):
    """文档模板"""
    id: str
    name: str
    description: str = ""
    category: str = "General"
    sub_category: str | None = None
    tags: list[str] = Field(default_factory=list)
    content: str = Field("", description="含{{fieldName}}占位符的正文")
    fidelity_image: str | None = Field(None, description="母版页图像（data URI）")
    fidelity_master: str | None = Field(None, description="原始源文件（data URI）")
    fields: list[TemplateField] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: int = Field(1, ge=1)
    history: list[VersionHistoryEntry] = Field(default_factory=list)
    usage_count: int | None = None
    last_used: datetime | None = None
    is_favorite: bool | None = None

    model_config = _CAMEL

    @model_validator(mode="after")
    def _check_fields_unique(self) -> DocumentTemplate:
        issues = find_field_conflicts(self.fields)
        if issues:
            raise ValueError("; ".join(issues))
        return self

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def has_fidelity_image(self) -> bool:
        return bool(self.fidelity_image)

    def get_field(self, name: str) -> TemplateField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def dynamic_fields(self) -> list[TemplateField]:
        return [f for f in self.fields if f.category == FieldCategory.DYNAMIC]

    def placeholder_names(self) -> list[str]:
        """正文中出现的占位符名（去重，保持顺序）"""
        seen: dict[str, None] = {}
        for m in PLACEHOLDER_PATTERN.finditer(self.content):
            seen.setdefault(m.group(1), None)
        return list(seen)

    def placeholder_warnings(self) -> list[str]:
        """正文与字段不一致的告警（非致命）"""
        if not self.content:
            return []
        names = {n.lower() for n in self.field_names}
        placeholders = self.placeholder_names()
        lowered = {p.lower() for p in placeholders}
        warnings = [f"占位符无对应字段: {p}" for p in placeholders if p.lower() not in names]
        warnings += [f"字段未在正文中使用: {n}" for n in self.field_names if n.lower() not in lowered]
        return warnings


class Category(BaseModel):
    """模板分类（子分类为扁平集合）"""
    id: str
    name: str
    sub_categories: list[str] = Field(default_factory=list)

    model_config = _CAMEL

    def add_sub_category(self, name: str) -> bool:
        """追加子分类，已存在返回False"""
        name = name.strip()
        if not name or name in self.sub_categories:
            return False
        self.sub_categories.append(name)
        return True

    def remove_sub_category(self, name: str) -> bool:
        if name not in self.sub_categories:
            return False
        self.sub_categories.remove(name)
        return True


def find_field_conflicts(fields: list[TemplateField]) -> list[str]:
    """检查字段名/ID重复，返回问题列表"""
    issues: list[str] = []
    seen_names: set[str] = set()
    seen_ids: set[str] = set()
    for f in fields:
        if f.name in seen_names:
            issues.append(f"字段名重复: {f.name}")
        seen_names.add(f.name)
        if f.id in seen_ids:
            issues.append(f"字段ID重复: {f.id}")
        seen_ids.add(f.id)
    return issues
