"""
识别服务HTTP客户端 - 外部调用的唯一出口

职责：
1. JSON POST（超时由调用方按接口传入）
2. 传输/配额/状态码错误翻译为 ExternalServiceError
3. 至多一次语义：默认不重试，仅在配置显式开启时对传输错误重试

依赖：
- requests: HTTP 调用

测试要点：
- test_timeout_translated: 超时 → AI_UNAVAILABLE
- test_quota_translated: 429/quota → AI_UNAVAILABLE
- test_413_translated: 413 → PAYLOAD_TOO_LARGE
- test_invalid_json: 非JSON响应 → ANALYSIS_FAILED
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..config import RuntimeConfig, get_config
from ..interfaces import ExternalServiceCode, ExternalServiceError

logger = logging.getLogger(__name__)


class GatewayClient:
    """识别服务客户端"""

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config or get_config()
        self.session = session or requests.Session()

    def post_json(self, path: str, payload: dict[str, Any], timeout: float) -> Any:
        """POST JSON 并返回解析后的响应体"""
        attempts = 1 + max(0, self.config.gateway.max_retries)
        last_error: ExternalServiceError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return self._post_once(path, payload, timeout)
            except ExternalServiceError as e:
                last_error = e
                if e.code != ExternalServiceCode.AI_UNAVAILABLE or attempt == attempts:
                    raise
                logger.warning(f"识别服务调用失败，重试 {attempt}/{attempts - 1}: {path}: {e.message}")

        raise last_error  # pragma: no cover

    def _post_once(self, path: str, payload: dict[str, Any], timeout: float) -> Any:
        url = self.config.gateway.base_url.rstrip("/") + path
        headers = {"Content-Type": "application/json"}
        if self.config.gateway.api_key:
            headers["Authorization"] = f"Bearer {self.config.gateway.api_key}"

        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            raise ExternalServiceError(
                ExternalServiceCode.AI_UNAVAILABLE, f"识别服务响应超时（{timeout:g}秒）"
            ) from e
        except requests.RequestException as e:
            raise ExternalServiceError(
                ExternalServiceCode.AI_UNAVAILABLE, f"识别服务无法连接: {e.__class__.__name__}"
            ) from e

        if not 200 <= resp.status_code < 300:
            raise self._translate_status(resp)

        try:
            return resp.json()
        except ValueError as e:
            raise ExternalServiceError(
                ExternalServiceCode.ANALYSIS_FAILED, "识别服务返回了无法解析的结果"
            ) from e

    @staticmethod
    def _translate_status(resp: requests.Response) -> ExternalServiceError:
        """非2xx响应 → 类型化错误"""
        detail = ""
        try:
            body = resp.json()
            if isinstance(body, dict):
                detail = str(body.get("error") or "")
        except ValueError:
            detail = resp.text[:200] if resp.text else ""

        logger.warning(f"识别服务返回错误 {resp.status_code}: {detail}")

        if resp.status_code == 429 or "quota" in detail.lower():
            return ExternalServiceError(
                ExternalServiceCode.AI_UNAVAILABLE, "识别服务调用额度已用尽，请稍后再试"
            )
        if resp.status_code == 413:
            return ExternalServiceError(
                ExternalServiceCode.PAYLOAD_TOO_LARGE, "图像过大，识别服务拒绝处理，请压缩后重试"
            )
        if resp.status_code in (502, 503, 504):
            return ExternalServiceError(
                ExternalServiceCode.AI_UNAVAILABLE, f"识别服务暂不可用（HTTP {resp.status_code}）"
            )
        return ExternalServiceError(
            ExternalServiceCode.ANALYSIS_FAILED,
            f"识别服务处理失败（HTTP {resp.status_code}）" + (f": {detail}" if detail else ""),
        )
