"""
单份文档生成单元测试

每个模块完成后必须运行：pytest tests/unit/test_single.py -v
"""

import io

import pytest
from PIL import Image

from conftest import FakeFiller
from docfidelity.authoring import Rasterizer
from docfidelity.config import RenderProfile, RuntimeConfig
from docfidelity.generation import DocumentRenderer, GenerationSession, safe_name
from docfidelity.interfaces import RenderError, ValidationError
from docfidelity.models import BoundingBox, DocumentTemplate, TemplateField, WorkspaceContext
from docfidelity.render import OverlayRenderer, encode_data_uri
from docfidelity.store import TemplateStore


@pytest.fixture
def store(runtime_config: RuntimeConfig) -> TemplateStore:
    return TemplateStore(runtime_config)


@pytest.fixture
def make_session(runtime_config: RuntimeConfig, ctx: WorkspaceContext, profile: RenderProfile):
    def factory(template: DocumentTemplate, store=None, filler=None) -> GenerationSession:
        return GenerationSession(
            ctx,
            template,
            store=store,
            filler=filler,
            renderer=OverlayRenderer(profile),
            config=runtime_config,
        )
    return factory


class TestGenerationSession:
    """生成会话测试"""

    def test_values_from_defaults(self, make_session, sample_template: DocumentTemplate):
        """测试默认值初始化"""
        session = make_session(sample_template)
        assert session.values == {"ClientName": "", "Date": "", "Total": "0"}

    def test_missing_required(self, make_session, sample_template: DocumentTemplate):
        """测试缺失必填按字段顺序列出"""
        session = make_session(sample_template)
        session.set_value("ClientName", "Acme")
        session.set_value("Date", "   ")
        assert session.missing_required() == ["Date"]

    def test_export_missing_required(self, make_session, sample_template: DocumentTemplate):
        """测试缺失必填拒绝导出并列出字段名"""
        session = make_session(sample_template)
        session.set_value("ClientName", "Acme")
        with pytest.raises(ValidationError) as exc_info:
            session.export()
        assert exc_info.value.missing_fields == ["Date"]
        assert "Date" in str(exc_info.value)

    def test_export_png(
        self, make_session, sample_template: DocumentTemplate, store: TemplateStore, ctx: WorkspaceContext
    ):
        """测试导出PNG并记录使用次数"""
        store.add(ctx, sample_template)
        session = make_session(sample_template, store=store)
        session.set_values({"ClientName": "Acme", "Date": "2024-01-31"})
        document = session.export()

        assert document.filename == "Invoice.png"
        assert document.mime_type == "image/png"
        assert Image.open(io.BytesIO(document.data)).size == (400, 300)
        assert store.get(ctx, sample_template.id).usage_count == 1

    def test_export_pdf(self, make_session, sample_template: DocumentTemplate):
        """测试导出PDF"""
        session = make_session(sample_template)
        session.set_values({"ClientName": "Acme", "Date": "2024-01-31"})
        document = session.export("pdf")
        assert document.filename == "Invoice.pdf"
        assert document.data.startswith(b"%PDF")

    def test_unsupported_format(self, make_session, sample_template: DocumentTemplate):
        """测试不支持的导出格式"""
        session = make_session(sample_template)
        session.set_values({"ClientName": "Acme", "Date": "2024-01-31"})
        with pytest.raises(RenderError):
            session.export("tiff")

    def test_snapshot_isolated(self, make_session, sample_template: DocumentTemplate):
        """测试快照与原模板隔离"""
        session = make_session(sample_template)
        sample_template.fields[0].name = "Renamed"
        sample_template.name = "Changed"
        assert session.template.fields[0].name == "ClientName"
        assert session.template.name == "Invoice"

    def test_unknown_field(self, make_session, sample_template: DocumentTemplate):
        """测试未知字段"""
        session = make_session(sample_template)
        with pytest.raises(ValidationError):
            session.set_value("Nope", "x")

    def test_fill_with_ai_merges(self, make_session, sample_template: DocumentTemplate):
        """测试AI填充只合并已知字段"""
        filler = FakeFiller({"ClientName": "Acme", "Ghost": "boo"})
        session = make_session(sample_template, filler=filler)
        session.set_value("Total", "99")

        suggestions = session.fill_with_ai("bill acme")
        assert suggestions == {"ClientName": "Acme", "Ghost": "boo"}
        assert session.values == {"ClientName": "Acme", "Date": "", "Total": "99"}
        assert filler.calls == [("Invoice", ["ClientName", "Date", "Total"], "bill acme")]

    def test_fill_without_filler(self, make_session, sample_template: DocumentTemplate):
        """测试未配置AI填充"""
        assert make_session(sample_template).fill_with_ai("x") == {}

    def test_preview_placeholder(self, make_session, sample_template: DocumentTemplate):
        """测试预览占位符与焦点"""
        session = make_session(sample_template)
        session.set_value("ClientName", "Acme")
        page = session.preview_html(focused_field="Date")
        assert "Acme" in page
        assert "[Date]" in page
        assert "[Total]" not in page
        assert "outline:" in page
        assert sample_template.fidelity_image in page


class TestTextMode:
    """文本模式测试"""

    def test_text_mode_doc(self, make_session, text_template: DocumentTemplate):
        """测试文本模式输出 .doc"""
        session = make_session(text_template)
        session.set_value("Name", "Bob")
        document = session.export("png")

        assert document.filename == "Welcome_Letter.doc"
        assert document.mime_type == "application/msword"
        assert "Dear Bob, welcome to Acme." in document.data.decode("utf-8")

    def test_text_mode_preview(self, make_session, text_template: DocumentTemplate):
        """测试文本模式预览"""
        session = make_session(text_template)
        session.set_value("Name", "<Bob>")
        page = session.preview_html()
        assert page.startswith('<div class="text-document">')
        assert "&lt;Bob&gt;" in page


class TestMultiPage:
    """多页模板测试"""

    @pytest.fixture
    def multipage_template(self, png_bytes: bytes, pdf_bytes: bytes) -> DocumentTemplate:
        return DocumentTemplate(
            id="tmpl-multi",
            name="Contract",
            fidelity_image=encode_data_uri(png_bytes, "image/png"),
            fidelity_master=encode_data_uri(pdf_bytes, "application/pdf"),
            fields=[
                TemplateField(id="a", name="Party", rect=BoundingBox(ymin=100, xmin=100, ymax=150, xmax=500)),
                TemplateField(
                    id="b",
                    name="Signature",
                    rect=BoundingBox(ymin=800, xmin=100, ymax=850, xmax=500),
                    page_index=1,
                ),
            ],
        )

    def test_multipage_forces_pdf(self, make_session, multipage_template: DocumentTemplate):
        """测试多页母版导出为PDF"""
        session = make_session(multipage_template)
        session.set_values({"Party": "Acme", "Signature": "J. Doe"})
        document = session.export("png")

        assert document.filename == "Contract.pdf"
        assert document.page_count == 2
        assert document.data.startswith(b"%PDF")

    def test_second_page_preview(self, make_session, multipage_template: DocumentTemplate):
        """测试第2页预览只含该页字段"""
        page = make_session(multipage_template).preview_html(page_index=1)
        assert "[Signature]" in page
        assert "[Party]" not in page
        assert "data:image/png;base64," in page

    def test_missing_page(self, runtime_config: RuntimeConfig, profile: RenderProfile, sample_template: DocumentTemplate):
        """测试单页模板请求第2页"""
        document = DocumentRenderer(sample_template, OverlayRenderer(profile), Rasterizer(runtime_config))
        assert document.pages.page_count == 1
        with pytest.raises(RenderError):
            document.pages.page_image(1)


class TestSafeName:
    """文件名安全化测试"""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Invoice", "Invoice"),
            ("Welcome Letter", "Welcome_Letter"),
            ("a/b\\c:d", "a_b_c_d"),
            ("  ***  ", "document"),
        ],
    )
    def test_safe_name(self, name: str, expected: str):
        """测试文件名安全化"""
        assert safe_name(name) == expected
