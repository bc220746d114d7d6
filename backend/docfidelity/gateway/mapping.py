"""
表头映射助手 - POST /ai/suggest-mapping

职责：
1. 调用映射服务建议 字段 → 表头
2. 结果收敛：每个字段都是键；不在表头中的值置为None
3. 服务失败时使用确定性的名称匹配（规范化后完全相等），不猜测
4. 手动覆盖：任何建议都可被调用方改写

测试要点：
- test_every_field_is_key: 每个字段都出现
- test_unknown_header_nulled: 非法表头置None
- test_service_failure_heuristic: 服务失败走名称匹配
- test_apply_overrides: 手动覆盖
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel

from ..interfaces import ExternalServiceError, IMappingService, ValidationError
from .client import GatewayClient

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


class MappingSuggestion(BaseModel):
    """映射建议"""
    mapping: dict[str, str | None]
    source: str = "service"  # service | heuristic
    warning: str | None = None


class MappingAssistant(IMappingService):
    """表头映射助手实现"""

    def __init__(self, client: GatewayClient | None = None):
        self.client = client or GatewayClient()

    def suggest_mapping(
        self, field_names: list[str], headers: list[str]
    ) -> dict[str, str | None]:
        """建议映射（仅映射表）"""
        return self.suggest(field_names, headers).mapping

    def suggest(self, field_names: list[str], headers: list[str]) -> MappingSuggestion:
        """建议映射（含来源说明）"""
        if not field_names:
            return MappingSuggestion(mapping={})
        if not headers:
            return MappingSuggestion(mapping={f: None for f in field_names}, source="heuristic")

        config = self.client.config
        payload = {"fieldList": ", ".join(field_names), "headerList": ", ".join(headers)}
        try:
            data = self.client.post_json(
                config.gateway.mapping_path, payload, timeout=config.timeouts.mapping_sec
            )
            if isinstance(data, dict) and data.get("error"):
                raise ValueError(str(data["error"]))
            if not isinstance(data, dict):
                raise ValueError("映射结果不是对象")
        except (ExternalServiceError, ValueError) as e:
            logger.warning(f"映射服务不可用，改用名称匹配: {e}")
            return MappingSuggestion(
                mapping=heuristic_mapping(field_names, headers),
                source="heuristic",
                warning=f"自动映射不可用，已按列名匹配，请逐项确认。{e}",
            )

        return MappingSuggestion(mapping=coerce_mapping(data, field_names, headers))


def coerce_mapping(
    data: dict[str, Any], field_names: list[str], headers: list[str]
) -> dict[str, str | None]:
    """收敛服务返回的映射"""
    by_lower_key = {str(k).strip().lower(): v for k, v in data.items()}
    result: dict[str, str | None] = {}
    for name in field_names:
        raw = data.get(name, by_lower_key.get(name.strip().lower()))
        result[name] = _match_header(raw, headers)
    return result


def heuristic_mapping(field_names: list[str], headers: list[str]) -> dict[str, str | None]:
    """确定性名称匹配：忽略大小写/空白/标点后完全相等"""
    normalized = {}
    for h in headers:
        normalized.setdefault(_normalize(h), h)
    return {name: normalized.get(_normalize(name)) for name in field_names}


def apply_overrides(
    mapping: dict[str, str | None],
    overrides: dict[str, str | None],
    headers: list[str],
) -> dict[str, str | None]:
    """应用手动覆盖（空串视为取消映射）"""
    issues = [f"未知字段: {k}" for k in overrides if k not in mapping]
    for field, header in overrides.items():
        if header and header not in headers:
            issues.append(f"字段 {field} 映射到不存在的列: {header}")
    if issues:
        raise ValidationError("映射覆盖无效", issues=issues)

    result = dict(mapping)
    for field, header in overrides.items():
        result[field] = header or None
    return result


def _match_header(raw: Any, headers: list[str]) -> str | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    if raw in headers:
        return raw
    stripped = raw.strip().lower()
    for h in headers:
        if h.strip().lower() == stripped:
            return h
    return None


def _normalize(text: str) -> str:
    return _NON_ALNUM.sub("", text).lower()
