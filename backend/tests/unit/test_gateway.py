"""
识别服务网关单元测试（客户端/字段检测/响应收敛/AI填充）

每个模块完成后必须运行：pytest tests/unit/test_gateway.py -v
"""

import base64

import pytest
import requests

from conftest import FakeResponse, FakeSession
from docfidelity.config import RenderProfile, RuntimeConfig
from docfidelity.gateway import (
    FieldDetectionGateway,
    FormFillGateway,
    GatewayClient,
    coerce_box,
    coerce_style,
    parse_detection_payload,
)
from docfidelity.interfaces import (
    MANUAL_FALLBACK_HINT,
    ExternalServiceCode,
    ExternalServiceError,
)
from docfidelity.models import (
    BoundingBox,
    DocumentTemplate,
    FieldCategory,
    FieldType,
    TemplateField,
)


class TestGatewayClient:
    """HTTP客户端错误翻译测试"""

    def test_post_json(self, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试正常调用"""
        fake_session.queue(FakeResponse(200, {"ok": True}))
        assert gateway_client.post_json("/x", {"a": 1}, timeout=5) == {"ok": True}
        call = fake_session.calls[0]
        assert call["url"] == "http://localhost:5001/x"
        assert call["json"] == {"a": 1}
        assert call["timeout"] == 5
        assert "Authorization" not in call["headers"]

    def test_api_key_header(self, runtime_config: RuntimeConfig, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试鉴权头"""
        runtime_config.gateway.api_key = "secret"
        fake_session.queue(FakeResponse(200, {}))
        gateway_client.post_json("/x", {}, timeout=5)
        assert fake_session.calls[0]["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.parametrize(
        "result, code",
        [
            (requests.Timeout(), ExternalServiceCode.AI_UNAVAILABLE),
            (requests.ConnectionError(), ExternalServiceCode.AI_UNAVAILABLE),
            (FakeResponse(429, {"error": "slow down"}), ExternalServiceCode.AI_UNAVAILABLE),
            (FakeResponse(500, {"error": "Quota exceeded"}), ExternalServiceCode.AI_UNAVAILABLE),
            (FakeResponse(503, text="unavailable"), ExternalServiceCode.AI_UNAVAILABLE),
            (FakeResponse(413), ExternalServiceCode.PAYLOAD_TOO_LARGE),
            (FakeResponse(400, {"error": "bad image"}), ExternalServiceCode.ANALYSIS_FAILED),
            (FakeResponse(200, text="<html>"), ExternalServiceCode.ANALYSIS_FAILED),
        ],
    )
    def test_errors_translated(self, gateway_client: GatewayClient, fake_session: FakeSession, result, code):
        """测试传输/状态码错误翻译为类型化错误"""
        fake_session.queue(result)
        with pytest.raises(ExternalServiceError) as exc_info:
            gateway_client.post_json("/x", {}, timeout=5)
        assert exc_info.value.code == code
        assert exc_info.value.hint == MANUAL_FALLBACK_HINT

    def test_no_retry_by_default(self, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试默认至多调用一次"""
        fake_session.queue(requests.Timeout(), FakeResponse(200, {}))
        with pytest.raises(ExternalServiceError):
            gateway_client.post_json("/x", {}, timeout=5)
        assert len(fake_session.calls) == 1

    def test_retry_when_enabled(self, runtime_config: RuntimeConfig, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试显式开启重试"""
        runtime_config.gateway.max_retries = 1
        fake_session.queue(requests.Timeout(), FakeResponse(200, {"ok": 1}))
        assert gateway_client.post_json("/x", {}, timeout=5) == {"ok": 1}
        assert len(fake_session.calls) == 2

    def test_payload_error_not_retried(self, runtime_config: RuntimeConfig, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试载荷过大不重试"""
        runtime_config.gateway.max_retries = 3
        fake_session.queue(FakeResponse(413), FakeResponse(200, {}))
        with pytest.raises(ExternalServiceError):
            gateway_client.post_json("/x", {}, timeout=5)
        assert len(fake_session.calls) == 1


class TestFieldDetectionGateway:
    """字段检测测试"""

    def test_oversized_payload_no_network(
        self, runtime_config: RuntimeConfig, gateway_client: GatewayClient, fake_session: FakeSession, profile: RenderProfile
    ):
        """测试超限载荷本地拒绝，不发起调用"""
        runtime_config.gateway.max_payload_mb = 0.001
        gateway = FieldDetectionGateway(client=gateway_client, profile=profile)
        with pytest.raises(ExternalServiceError) as exc_info:
            gateway.detect_fields(b"x" * 2000, "image/jpeg")
        assert exc_info.value.code == ExternalServiceCode.PAYLOAD_TOO_LARGE
        assert fake_session.calls == []

    def test_detect_fields_parsed(self, gateway_client: GatewayClient, fake_session: FakeSession, profile: RenderProfile):
        """测试正常解析"""
        fake_session.queue(FakeResponse(200, {
            "suggestedTitle": "Invoice",
            "fields": [{
                "name": "Total",
                "type": "currency",
                "rect": {"ymin": 300, "xmin": 500, "ymax": 320, "xmax": 700},
                "style": {"fontSize": 14, "textAlign": "Right", "color": "#111111"},
            }],
        }))
        gateway = FieldDetectionGateway(client=gateway_client, profile=profile)
        result = gateway.detect_fields(b"jpeg-bytes", "image/jpeg")

        payload = fake_session.calls[0]["json"]
        assert base64.b64decode(payload["fileData"]) == b"jpeg-bytes"
        assert payload["mimeType"] == "image/jpeg"
        assert fake_session.calls[0]["url"].endswith("/ai/detect-fields")

        assert result.suggested_title == "Invoice"
        field = result.fields[0]
        assert field.name == "Total"
        assert field.type == FieldType.NUMBER
        assert field.category == FieldCategory.DYNAMIC
        assert field.required
        assert field.rect == BoundingBox(ymin=300, xmin=500, ymax=320, xmax=700)
        assert field.style.font_size == "14px"
        assert field.style.text_align == "right"
        assert field.page_index == 0

    def test_error_body(self, gateway_client: GatewayClient, fake_session: FakeSession, profile: RenderProfile):
        """测试服务返回 {error}"""
        fake_session.queue(FakeResponse(200, {"error": "cannot read"}))
        gateway = FieldDetectionGateway(client=gateway_client, profile=profile)
        with pytest.raises(ExternalServiceError) as exc_info:
            gateway.detect_fields(b"x", "image/jpeg")
        assert exc_info.value.code == ExternalServiceCode.ANALYSIS_FAILED

    def test_malformed_response(self, gateway_client: GatewayClient, fake_session: FakeSession, profile: RenderProfile):
        """测试结构错误 → ANALYSIS_FAILED"""
        fake_session.queue(FakeResponse(200, "just text"))
        gateway = FieldDetectionGateway(client=gateway_client, profile=profile)
        with pytest.raises(ExternalServiceError) as exc_info:
            gateway.detect_fields(b"x", "image/jpeg")
        assert exc_info.value.code == ExternalServiceCode.ANALYSIS_FAILED

    def test_empty_image(self, gateway_client: GatewayClient, fake_session: FakeSession, profile: RenderProfile):
        """测试空图像"""
        gateway = FieldDetectionGateway(client=gateway_client, profile=profile)
        with pytest.raises(ExternalServiceError):
            gateway.detect_fields(b"", "image/jpeg")
        assert fake_session.calls == []


class TestCoercion:
    """响应收敛测试"""

    def test_coerce_box_float_and_swapped(self):
        """测试浮点/颠倒坐标修正"""
        box = coerce_box([320.6, 700, 300.2, 500])
        assert box == BoundingBox(ymin=300, xmin=500, ymax=321, xmax=700)

    def test_coerce_box_clamped(self):
        """测试越界截断"""
        box = coerce_box({"ymin": -5, "xmin": 0, "ymax": 1200, "xmax": 50})
        assert box == BoundingBox(ymin=0, xmin=0, ymax=1000, xmax=50)

    @pytest.mark.parametrize(
        "raw",
        [
            {"ymin": 10, "xmin": 10, "ymax": 10, "xmax": 50},
            [0, 0, 10],
            "0,0,10,10",
            [0, True, 10, 10],
            [0, "abc", 10, 10],
            None,
        ],
    )
    def test_coerce_box_rejected(self, raw):
        """测试无法修正的坐标"""
        assert coerce_box(raw) is None

    def test_coerce_style(self):
        """测试样式收敛"""
        style = coerce_style({"fontWeight": 700, "textAlign": "justify", "unknown": "x", "color": ""})
        assert style.font_weight == "700"
        assert style.text_align is None
        assert style.color is None
        assert coerce_style("bold") is None

    def test_coerce_style_rejects_invalid_values(self):
        """测试不合法的样式值被丢弃"""
        style = coerce_style({
            "color": 'red" onmouseover="alert(1)',
            "fontFamily": 'Inter"><script>alert(2)</script>',
            "fontSize": "12px; background:url(x)",
            "fontWeight": "bold;color:red",
            "textAlign": "center",
        })
        assert style.color is None
        assert style.font_family is None
        assert style.font_size is None
        assert style.font_weight is None
        assert style.text_align == "center"

        kept = coerce_style({"color": "rgb(1, 2, 3)", "fontFamily": "'Inter', sans-serif", "fontSize": "1.2vw"})
        assert kept.color == "rgb(1, 2, 3)"
        assert kept.font_family == "'Inter', sans-serif"
        assert kept.font_size == "1.2vw"

    def test_field_name_aliases_and_duplicates(self, profile: RenderProfile):
        """测试字段名兼容与重名后缀"""
        data = [
            {"variableName": "Name", "rect": [0, 0, 10, 10]},
            {"name": "Name", "box": [20, 0, 30, 10]},
            {"name": "", "rect": [40, 0, 50, 10]},
            {"name": "Bad", "rect": [0, 0, 0, 0]},
            "junk",
        ]
        result = parse_detection_payload(data, profile, page_index=2)
        assert [f.name for f in result.fields] == ["Name", "Name_2"]
        assert all(f.page_index == 2 for f in result.fields)
        assert len(result.warnings) == 4
        assert result.suggested_title == "Untitled"

    def test_fields_not_list(self, profile: RenderProfile):
        """测试 fields 非数组"""
        with pytest.raises(ValueError):
            parse_detection_payload({"fields": "oops"}, profile)


class TestFormFillGateway:
    """AI填充测试"""

    def test_fill_form(self, gateway_client: GatewayClient, fake_session: FakeSession, sample_template: DocumentTemplate):
        """测试只保留已知字段并转为字符串"""
        fake_session.queue(FakeResponse(200, {"clientname": "Acme", "Unknown": "x", "Total": 500, "Date": None}))
        result = FormFillGateway(gateway_client).fill_form("Invoice", sample_template.fields, "bill acme")

        assert result == {"ClientName": "Acme", "Total": "500"}
        payload = fake_session.calls[0]["json"]
        assert payload == {
            "templateName": "Invoice",
            "fieldList": "ClientName, Date, Total",
            "instruction": "bill acme",
        }

    def test_failure_returns_empty(self, gateway_client: GatewayClient, fake_session: FakeSession, sample_template: DocumentTemplate):
        """测试失败降级为空结果"""
        fake_session.queue(requests.Timeout())
        assert FormFillGateway(gateway_client).fill_form("Invoice", sample_template.fields, "x") == {}

    def test_branding_fields_skipped(self, gateway_client: GatewayClient, fake_session: FakeSession):
        """测试无 DYNAMIC 字段不调用"""
        fields = [TemplateField(id="b", name="Logo", category=FieldCategory.BRANDING)]
        assert FormFillGateway(gateway_client).fill_form("T", fields, "x") == {}
        assert fake_session.calls == []
