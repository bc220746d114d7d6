"""
表格数据读取 - CSV / XLSX → TabularDataset

首行为表头；空行跳过；单元格统一为去除两侧空白的字符串。

依赖：
- csv: CSV 解析（支持引号内逗号/换行）
- openpyxl: XLSX 读取

测试要点：
- test_parse_csv_quoted: 引号内逗号
- test_parse_csv_bom: 去除 BOM
- test_load_xlsx: 读取首个工作表
- test_empty_rejected: 无表头拒绝
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from ..interfaces import ValidationError
from ..models import TabularDataset


def parse_csv(text: str | bytes) -> TabularDataset:
    """解析CSV文本"""
    if isinstance(text, bytes):
        text = text.decode("utf-8-sig")
    text = text.lstrip("\ufeff")

    rows = [
        [cell.strip() for cell in row]
        for row in csv.reader(io.StringIO(text))
        if any(cell.strip() for cell in row)
    ]
    return _to_dataset(rows)


def load_xlsx(source: str | Path | bytes, sheet_name: str | None = None) -> TabularDataset:
    """读取XLSX（默认首个工作表）"""
    fp = io.BytesIO(source) if isinstance(source, bytes) else source
    wb = load_workbook(fp, read_only=True, data_only=True)
    try:
        ws = wb[sheet_name] if sheet_name else wb.worksheets[0]
        rows = [
            [_cell_text(v) for v in row]
            for row in ws.iter_rows(values_only=True)
            if any(v is not None and str(v).strip() for v in row)
        ]
    finally:
        wb.close()
    return _to_dataset(rows)


def load_tabular(path: str | Path) -> TabularDataset:
    """按扩展名读取表格文件"""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return load_xlsx(path)
    if suffix in (".csv", ".txt"):
        return parse_csv(path.read_bytes())
    raise ValidationError("不支持的表格格式", issues=[f"不支持的表格格式: {suffix}"])


def _to_dataset(rows: list[list[str]]) -> TabularDataset:
    if not rows:
        raise ValidationError("表格为空", issues=["表格为空，缺少表头"])
    headers = rows[0]
    # 去掉尾部空表头列
    while headers and not headers[-1]:
        headers = headers[:-1]
    if not headers:
        raise ValidationError("表格为空", issues=["表格为空，缺少表头"])
    return TabularDataset(headers=headers, rows=rows[1:])


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
