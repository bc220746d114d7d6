"""
AI填充网关 - POST /ai/fill-form

只针对 DYNAMIC 类别字段；返回值只保留已知字段的字符串值。
任何失败降级为空结果，用户保留手动输入。
"""

from __future__ import annotations

import logging

from ..interfaces import ExternalServiceError, IFormFiller
from ..models import FieldCategory, TemplateField
from .client import GatewayClient

logger = logging.getLogger(__name__)


class FormFillGateway(IFormFiller):
    """AI填充实现"""

    def __init__(self, client: GatewayClient | None = None):
        self.client = client or GatewayClient()

    def fill_form(
        self, template_name: str, fields: list[TemplateField], instruction: str
    ) -> dict[str, str]:
        names = [f.name for f in fields if f.category == FieldCategory.DYNAMIC]
        if not names or not instruction.strip():
            return {}

        config = self.client.config
        payload = {
            "templateName": template_name,
            "fieldList": ", ".join(names),
            "instruction": instruction.strip(),
        }
        try:
            data = self.client.post_json(config.gateway.fill_path, payload, timeout=config.timeouts.fill_sec)
        except ExternalServiceError as e:
            logger.warning(f"AI填充失败，返回空结果: {e.message}")
            return {}

        if not isinstance(data, dict) or data.get("error"):
            logger.warning(f"AI填充结果无效，返回空结果: {str(data)[:200]}")
            return {}

        lowered = {n.lower(): n for n in names}
        result: dict[str, str] = {}
        for key, value in data.items():
            name = lowered.get(str(key).strip().lower())
            if name is None or value is None or isinstance(value, (dict, list)):
                continue
            result[name] = str(value)
        return result
