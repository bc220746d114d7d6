"""
渲染配置加载器 - 读取 config/render_profile.yaml

职责：
- 解析YAML并提供类型安全访问
- 提供兜底样式、占位符样式、手动字段样式、字体映射、字段类型别名
- 缓存加载结果（避免重复解析）

使用方式：
    profile = load_render_profile("config/render_profile.yaml")
    style = profile.default_style
    font_file = profile.get_font_file("Inter", bold=True)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from ..models import FieldStyle


class PlaceholderStyle(BaseModel):
    """空值占位符样式（仅交互预览）"""
    color: str = "#f59e0b80"
    italic: bool = True


class FontEntry(BaseModel):
    """字体文件映射"""
    regular: str
    bold: str | None = None


class RenderProfile(BaseModel):
    """渲染配置（render_profile.yaml 的结构化表示）"""
    schema_version: str = "1.0"

    # 交互预览容器宽度（px/pt字号以此为基准按图像宽度缩放）
    reference_width: int = 1000

    default_style: FieldStyle = Field(
        default_factory=lambda: FieldStyle(
            color="#0f172a", font_weight="bold", text_align="left", font_size="1.1vw"
        )
    )
    manual_field_style: FieldStyle = Field(
        default_factory=lambda: FieldStyle(color="#2563eb", font_weight="bold")
    )
    placeholder: PlaceholderStyle = Field(default_factory=PlaceholderStyle)
    focus_outline_color: str = "#3b82f6"

    fonts: dict[str, FontEntry] = Field(default_factory=dict)
    type_aliases: dict[str, str] = Field(
        default_factory=lambda: {
            "STRING": "TEXT",
            "TEXT": "TEXT",
            "CURRENCY": "NUMBER",
            "NUMBER": "NUMBER",
            "DATE": "DATE",
            "DROPDOWN": "DROPDOWN",
            "SELECT": "DROPDOWN",
        }
    )

    def get_font_file(self, family: str | None, bold: bool = False) -> str | None:
        """按字体族查字体文件（大小写不敏感）"""
        if not family:
            return None
        first = family.split(",")[0].strip().strip("'\"").lower()
        for name, entry in self.fonts.items():
            if name.lower() == first:
                return (entry.bold or entry.regular) if bold else entry.regular
        return None

    def resolve_type(self, raw: str | None) -> str | None:
        if not raw:
            return None
        return self.type_aliases.get(raw.strip().upper())


class RenderProfileLoader:
    """渲染配置加载器（缓存）"""

    @classmethod
    @lru_cache(maxsize=4)
    def load(cls, profile_path: str | Path = "config/render_profile.yaml") -> RenderProfile:
        """加载并缓存配置；文件不存在时使用内置默认值"""
        path = Path(profile_path)
        if not path.exists():
            return RenderProfile()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return RenderProfile(**data)

    @classmethod
    def reload(cls, profile_path: str | Path = "config/render_profile.yaml") -> RenderProfile:
        """强制重新加载（清除缓存）"""
        cls.load.cache_clear()
        return cls.load(profile_path)


def load_render_profile(profile_path: str | Path | None = None) -> RenderProfile:
    """加载渲染配置"""
    if profile_path is None:
        from .runtime_config import get_config

        profile_path = get_config().render_profile_path
    return RenderProfileLoader.load(str(profile_path))
