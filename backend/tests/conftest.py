"""
pytest 配置与公共 fixtures

使用方式：
    def test_something(sample_template, ctx):
        assert sample_template.get_field("Total") is not None
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Generator

import pytest
from PIL import Image, ImageDraw

from docfidelity.config import RenderProfile, RuntimeConfig, set_config
from docfidelity.gateway import GatewayClient
from docfidelity.interfaces import IFieldDetector, IFormFiller
from docfidelity.models import (
    BoundingBox,
    DetectionResult,
    DocumentTemplate,
    FieldType,
    TemplateField,
    WorkspaceContext,
)
from docfidelity.render import encode_data_uri

REPO_ROOT = Path(__file__).resolve().parents[2]


# ============================================================================
# 配置 Fixtures
# ============================================================================

@pytest.fixture
def runtime_config(tmp_path: Path) -> Generator[RuntimeConfig, None, None]:
    """运行期配置（存储目录指向临时目录，并设为全局配置）"""
    config = RuntimeConfig(
        storage_dir=tmp_path / "storage",
        render_profile_path=REPO_ROOT / "config" / "render_profile.yaml",
    )
    config.ensure_dirs()
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def profile() -> RenderProfile:
    """内置默认渲染配置"""
    return RenderProfile()


@pytest.fixture
def ctx() -> WorkspaceContext:
    """测试工作区"""
    return WorkspaceContext(workspace_id="ws-test", author="Tester")


# ============================================================================
# 文件 Fixtures
# ============================================================================

def make_png(width: int = 400, height: int = 300, color: str = "white") -> bytes:
    img = Image.new("RGB", (width, height), color)
    draw = ImageDraw.Draw(img)
    draw.rectangle((10, 10, width - 10, 40), fill="#1e3a8a")  # 页眉色块
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_pdf(pages: int = 2) -> bytes:
    images = [Image.new("RGB", (300, 400), c) for c in ("white", "#eeeeee", "#dddddd")[:pages]]
    buf = io.BytesIO()
    images[0].save(buf, format="PDF", save_all=True, append_images=images[1:], resolution=72.0)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """400x300 PNG 母版"""
    return make_png()


@pytest.fixture
def pdf_bytes() -> bytes:
    """两页 PDF 源文件"""
    return make_pdf(2)


# ============================================================================
# 模板 Fixtures
# ============================================================================

@pytest.fixture
def sample_template(png_bytes: bytes) -> DocumentTemplate:
    """母版模式示例模板"""
    return DocumentTemplate(
        id="tmpl-sample",
        name="Invoice",
        description="Monthly invoice",
        category="Finance",
        sub_category="Billing",
        tags=["invoice", "monthly"],
        content="Client: {{ClientName}} Date: {{Date}}",
        fidelity_image=encode_data_uri(png_bytes, "image/png"),
        fields=[
            TemplateField(
                id="f1",
                name="ClientName",
                required=True,
                rect=BoundingBox(ymin=100, xmin=100, ymax=150, xmax=500),
            ),
            TemplateField(
                id="f2",
                name="Date",
                type=FieldType.DATE,
                required=True,
                rect=BoundingBox(ymin=200, xmin=100, ymax=250, xmax=400),
            ),
            TemplateField(
                id="f3",
                name="Total",
                type=FieldType.NUMBER,
                default_value="0",
                rect=BoundingBox(ymin=300, xmin=500, ymax=320, xmax=700),
            ),
        ],
    )


@pytest.fixture
def text_template() -> DocumentTemplate:
    """文本模式示例模板（无母版图）"""
    return DocumentTemplate(
        id="tmpl-text",
        name="Welcome Letter",
        content="<p>Dear {{ Name }}, welcome to {{company}}.</p>",
        fields=[
            TemplateField(id="t1", name="Name", required=True),
            TemplateField(id="t2", name="Company", default_value="Acme"),
        ],
    )


# ============================================================================
# 外部服务替身
# ============================================================================

_NO_JSON = object()


class FakeResponse:
    """requests.Response 替身"""

    def __init__(self, status_code: int = 200, json_data: Any = _NO_JSON, text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    def json(self) -> Any:
        if self._json is _NO_JSON:
            raise ValueError("No JSON")
        return self._json


class FakeSession:
    """requests.Session 替身：按顺序返回预置响应或抛出预置异常"""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self._results: list[Any] = []

    def queue(self, *results: Any) -> FakeSession:
        self._results.extend(results)
        return self

    def post(self, url: str, json: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeDetector(IFieldDetector):
    """字段检测替身"""

    def __init__(self, result: DetectionResult | None = None, error: Exception | None = None):
        self.result = result or DetectionResult()
        self.error = error
        self.calls: list[tuple[int, str, int]] = []

    def detect_fields(self, image_bytes: bytes, mime_type: str, page_index: int = 0) -> DetectionResult:
        self.calls.append((len(image_bytes), mime_type, page_index))
        if self.error is not None:
            raise self.error
        return self.result.model_copy(deep=True)


class FakeFiller(IFormFiller):
    """AI填充替身"""

    def __init__(self, values: dict[str, str] | None = None):
        self.values = values or {}
        self.calls: list[tuple[str, list[str], str]] = []

    def fill_form(self, template_name: str, fields: list[TemplateField], instruction: str) -> dict[str, str]:
        self.calls.append((template_name, [f.name for f in fields], instruction))
        return dict(self.values)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def gateway_client(runtime_config: RuntimeConfig, fake_session: FakeSession) -> GatewayClient:
    """使用替身会话的网关客户端"""
    return GatewayClient(runtime_config, session=fake_session)
