"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用内存中的记录型传输层替代真实 WebSocket，
使状态机测试无需网络和事件循环即可运行。
"""
from __future__ import annotations

import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PERSIST_TO_MONGO", "false")

from evacuate.core.rate_limit import limiter  # noqa: E402
from evacuate.services.location_system import LocationSystem  # noqa: E402


class RecordingTransport:
    """记录所有发送事件的假传输层。"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def send(self, connection_id: str, event: str, data: dict) -> None:
        self.sent.append((connection_id, event, data))

    def events_for(self, connection_id: str, event: str | None = None) -> list[dict[str, Any]]:
        """返回发给某个连接的事件负载（可按事件名过滤）。"""
        return [
            data for cid, name, data in self.sent
            if cid == connection_id and (event is None or name == event)
        ]

    def names_for(self, connection_id: str) -> list[str]:
        return [name for cid, name, _ in self.sent if cid == connection_id]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def system(transport: RecordingTransport) -> LocationSystem:
    """未配置持久化的 ``LocationSystem``。"""
    return LocationSystem(transport=transport)


@pytest.fixture()
def no_rate_limit():
    """HTTP 测试中关闭 slowapi 限流，避免用例之间互相影响。"""
    limiter.enabled = False
    yield
    limiter.enabled = True
