"""
表格数据读取单元测试

每个模块完成后必须运行：pytest tests/unit/test_tabular.py -v
"""

import io
from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import Workbook

from docfidelity.interfaces import ValidationError
from docfidelity.pipeline import load_tabular, load_xlsx, parse_csv


def _xlsx_bytes(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestParseCsv:
    """CSV解析测试"""

    def test_parse_csv_quoted(self):
        """测试引号内逗号与换行"""
        dataset = parse_csv('Name,Address\n"Acme, Inc.","Line 1\nLine 2"\n')
        assert dataset.headers == ["Name", "Address"]
        assert dataset.rows == [["Acme, Inc.", "Line 1\nLine 2"]]

    def test_parse_csv_bom(self):
        """测试去除 BOM"""
        dataset = parse_csv("\ufeffName,Email\nBob,b@x.io\n".encode("utf-8"))
        assert dataset.headers == ["Name", "Email"]

    def test_blank_rows_skipped(self):
        """测试跳过空行并去除空白"""
        dataset = parse_csv("Name , Email\n\n Bob , b@x.io \n,\n")
        assert dataset.headers == ["Name", "Email"]
        assert dataset.rows == [["Bob", "b@x.io"]]

    def test_rows_padded(self):
        """测试短行补空，长行截断"""
        dataset = parse_csv("A,B,C\n1\n1,2,3,4\n")
        assert dataset.rows == [["1", "", ""], ["1", "2", "3"]]

    def test_trailing_empty_headers(self):
        """测试去掉尾部空表头"""
        dataset = parse_csv("A,B,,\n1,2,,\n")
        assert dataset.headers == ["A", "B"]
        assert dataset.rows == [["1", "2"]]

    @pytest.mark.parametrize("text", ["", "\n\n", ",,\n"])
    def test_empty_rejected(self, text: str):
        """测试无表头拒绝"""
        with pytest.raises(ValidationError):
            parse_csv(text)

    def test_preview(self):
        """测试前几行预览"""
        dataset = parse_csv("Name\nA\nB\nC\nD\n")
        assert dataset.row_count == 4
        assert dataset.preview() == [{"Name": "A"}, {"Name": "B"}, {"Name": "C"}]


class TestLoadXlsx:
    """XLSX读取测试"""

    def test_load_xlsx(self):
        """测试读取首个工作表并转为字符串"""
        data = _xlsx_bytes([
            ["Client", "Amount", "Date"],
            ["Acme", 12.0, datetime(2024, 1, 2)],
            [None, None, None],
            ["Beta", 3.5, datetime(2024, 1, 2, 9, 30)],
        ])
        dataset = load_xlsx(data)
        assert dataset.headers == ["Client", "Amount", "Date"]
        assert dataset.rows == [
            ["Acme", "12", "2024-01-02"],
            ["Beta", "3.5", "2024-01-02 09:30:00"],
        ]

    def test_load_tabular_by_suffix(self, tmp_path: Path):
        """测试按扩展名读取"""
        xlsx = tmp_path / "data.xlsx"
        xlsx.write_bytes(_xlsx_bytes([["Name"], ["Ann"]]))
        csv_file = tmp_path / "data.csv"
        csv_file.write_text("Name\nBob\n", encoding="utf-8")

        assert load_tabular(xlsx).rows == [["Ann"]]
        assert load_tabular(csv_file).rows == [["Bob"]]

    def test_unsupported_suffix(self, tmp_path: Path):
        """测试不支持的格式"""
        path = tmp_path / "data.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_tabular(path)
