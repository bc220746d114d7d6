"""
data URI 编解码 - 模板内嵌图像统一使用 data URI
"""

from __future__ import annotations

import base64
import binascii
import re

from ..interfaces import RenderError

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]+)*?);base64,(?P<data>.*)$", re.S)


def encode_data_uri(data: bytes, mime_type: str) -> str:
    """字节 → data URI"""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    """data URI → (字节, MIME类型)"""
    m = _DATA_URI.match(uri.strip())
    if not m:
        raise RenderError("图像数据不是有效的 base64 data URI")
    try:
        data = base64.b64decode(m.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise RenderError(f"图像数据解码失败: {e}") from e
    return data, m.group("mime") or "application/octet-stream"
