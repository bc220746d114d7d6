"""
表格数据集模型 - 批量生成的数据源（表头 + 行）
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class TabularDataset(BaseModel):
    """已解析的表格数据（首行为表头）"""
    headers: list[str]
    rows: list[list[str]] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize_rows(self) -> TabularDataset:
        # 行宽与表头对齐：短行补空，长行截断
        width = len(self.headers)
        self.rows = [
            (row + [""] * (width - len(row)))[:width] for row in self.rows
        ]
        return self

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def header_index(self, header: str) -> int | None:
        """表头位置（重复表头取第一个）"""
        try:
            return self.headers.index(header)
        except ValueError:
            return None

    def preview(self, limit: int = 3) -> list[dict[str, str]]:
        """前几行预览"""
        return [dict(zip(self.headers, row)) for row in self.rows[:limit]]
