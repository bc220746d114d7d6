"""
文本替换模式 - 无母版图像的模板按 {{fieldName}} 占位符生成文档

职责：
1. 占位符替换（名称大小写不敏感，两侧空白忽略）
2. 无对应值的占位符替换为空串
3. 包装为 Word 可打开的 HTML 文档

测试要点：
- test_interpolate_case_insensitive: 大小写不敏感
- test_unmapped_placeholder_empty: 未映射占位符为空
"""

from __future__ import annotations

import html

from ..models import PLACEHOLDER_PATTERN, DocumentTemplate

WORD_HTML_TEMPLATE = (
    "<html xmlns:o='urn:schemas-microsoft-com:office:office' "
    "xmlns:w='urn:schemas-microsoft-com:office:word' "
    "xmlns='http://www.w3.org/TR/REC-html40'>\n"
    "<head><meta charset='utf-8'><title>{title}</title>"
    "<style>body {{ font-family: 'Segoe UI', Arial; }}</style></head>\n"
    "<body>{body}</body></html>\n"
)


def interpolate(content: str, values: dict[str, str], escape: bool = True) -> str:
    """替换正文占位符"""
    lowered = {k.lower(): v for k, v in values.items()}

    def _sub(m) -> str:
        value = lowered.get(m.group(1).lower()) or ""
        return html.escape(value) if escape else value

    return PLACEHOLDER_PATTERN.sub(_sub, content)


def render_text_document(template: DocumentTemplate, values: dict[str, str]) -> bytes:
    """生成文本模式文档（UTF-8 HTML）"""
    known = {f.name: values.get(f.name) or "" for f in template.fields}
    body = interpolate(template.content, known)
    return WORD_HTML_TEMPLATE.format(title=html.escape(template.name), body=body).encode("utf-8")
