"""
运行上下文 - 显式传入各流程的工作区上下文与取消令牌
"""

from __future__ import annotations

import threading

from pydantic import BaseModel

from ..interfaces import CancelledError


class WorkspaceContext(BaseModel):
    """工作区上下文（替代全局"当前工作区"）"""
    workspace_id: str
    author: str = "System"

    model_config = {"frozen": True}


class CancelToken:
    """取消令牌，在每个状态迁移/批次边界检查"""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("操作已取消")
