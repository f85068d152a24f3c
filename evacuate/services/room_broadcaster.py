"""
evacuate.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间广播器 —— 把事件投递给房间内全部成员，或点对点回复单个连接。

成员列表来自 ``RoomRegistry``，真正的发送交给传输层（``ConnectionHub``）。
广播器本身不缓冲，同一房间的投递顺序就是调用顺序。
"""
from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel

from evacuate.core.logging import get_logger
from evacuate.services.room_registry import RoomRegistry

logger = get_logger(__name__)


class Transport(Protocol):
    """传输层发送接口（fire-and-forget，不确认送达）。"""

    def send(self, connection_id: str, event: str, data: dict) -> None: ...


def _dump(payload: BaseModel) -> dict:
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


class RoomBroadcaster:
    """基于注册表成员列表的扇出广播。

    Attributes:
        registry: 房间注册表（只读）。
        transport: 传输层发送通道。
    """

    def __init__(self, registry: RoomRegistry, transport: Transport) -> None:
        self.registry = registry
        self.transport = transport

    def send_to(self, connection_id: str, event: str, payload: BaseModel) -> None:
        """点对点发送给单个连接。"""
        self.transport.send(connection_id, event, _dump(payload))

    def broadcast(self, room_id: str, event: str, payload: BaseModel) -> int:
        """向房间内所有成员广播，返回投递的连接数。"""
        data = _dump(payload)
        members = self.registry.members_of(room_id)
        for connection_id in members:
            self.transport.send(connection_id, event, data)
        logger.debug("广播 | room=%s | event=%s | 成员: %d", room_id, event, len(members))
        return len(members)
