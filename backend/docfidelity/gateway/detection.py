"""
字段检测网关 - POST /ai/detect-fields

职责：
1. 本地载荷上限校验（超限立即失败，不发请求）
2. base64 编码调用识别服务
3. 响应收敛为严格的 TemplateField 列表

失败策略：始终抛出类型化错误（AI_UNAVAILABLE / PAYLOAD_TOO_LARGE /
ANALYSIS_FAILED），由调用方转入手动添加字段；不返回演示数据。

测试要点：
- test_oversized_payload_fails_fast: 超限不发请求
- test_detect_fields_parsed: 正常解析
- test_malformed_response: 结构错误 → ANALYSIS_FAILED
"""

from __future__ import annotations

import base64
import logging

from ..config import RenderProfile, RuntimeConfig, get_config, load_render_profile
from ..interfaces import ExternalServiceCode, ExternalServiceError, IFieldDetector
from ..models import DetectionResult
from .client import GatewayClient
from .coercion import parse_detection_payload

logger = logging.getLogger(__name__)


class FieldDetectionGateway(IFieldDetector):
    """字段检测网关实现"""

    def __init__(
        self,
        client: GatewayClient | None = None,
        config: RuntimeConfig | None = None,
        profile: RenderProfile | None = None,
    ):
        self.config = config or (client.config if client else get_config())
        self.client = client or GatewayClient(self.config)
        self.profile = profile or load_render_profile(self.config.render_profile_path)

    def detect_fields(
        self, image_bytes: bytes, mime_type: str, page_index: int = 0
    ) -> DetectionResult:
        """检测图像中的动态字段"""
        limit = self.config.gateway.max_payload_bytes
        if len(image_bytes) > limit:
            raise ExternalServiceError(
                ExternalServiceCode.PAYLOAD_TOO_LARGE,
                f"分析图像过大（{len(image_bytes) / 1024 / 1024:.1f}MB，"
                f"上限 {limit / 1024 / 1024:.1f}MB），请降低分辨率或压缩后重试",
            )
        if not image_bytes:
            raise ExternalServiceError(ExternalServiceCode.ANALYSIS_FAILED, "分析图像为空")

        payload = {
            "fileData": base64.b64encode(image_bytes).decode("ascii"),
            "mimeType": mime_type,
        }
        logger.info(f"请求字段检测: {len(image_bytes)} bytes, page={page_index}")
        data = self.client.post_json(
            self.config.gateway.detect_path, payload, timeout=self.config.timeouts.detect_sec
        )

        if isinstance(data, dict) and data.get("error"):
            raise ExternalServiceError(
                ExternalServiceCode.ANALYSIS_FAILED, f"字段检测失败: {data['error']}"
            )

        try:
            result = parse_detection_payload(data, self.profile, page_index=page_index)
        except ValueError as e:
            raise ExternalServiceError(
                ExternalServiceCode.ANALYSIS_FAILED, f"字段检测结果格式无效: {e}"
            ) from e

        for w in result.warnings:
            logger.warning(f"检测结果修正: {w}")
        logger.info(f"字段检测完成: {len(result.fields)} 个字段")
        return result
