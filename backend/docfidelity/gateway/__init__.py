"""
外部识别服务网关 - 所有外部调用经此出入

子模块：
- client: HTTP 客户端与错误翻译
- coercion: 松散JSON → 严格字段结构
- detection: 字段检测
- mapping: 表头映射助手
- fill: AI填充
"""

from .client import GatewayClient
from .coercion import coerce_box, coerce_style, parse_detection_payload
from .detection import FieldDetectionGateway
from .fill import FormFillGateway
from .mapping import (
    MappingAssistant,
    MappingSuggestion,
    apply_overrides,
    coerce_mapping,
    heuristic_mapping,
)

__all__ = [
    "GatewayClient",
    "FieldDetectionGateway",
    "FormFillGateway",
    "MappingAssistant",
    "MappingSuggestion",
    "apply_overrides",
    "coerce_mapping",
    "heuristic_mapping",
    "coerce_box",
    "coerce_style",
    "parse_detection_payload",
]
