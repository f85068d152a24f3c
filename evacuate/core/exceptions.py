"""
evacuate.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~

业务异常定义。

所有异常都在控制器或 WebSocket 端点内就地处理，转换为响应事件或直接丢弃，
不会导致连接被意外终止。
"""
from __future__ import annotations


class EvacuateError(Exception):
    """业务异常基类。"""


class RoomNotFoundError(EvacuateError):
    """对不存在的房间执行了成员变更。"""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"房间不存在: {room_id!r}")
        self.room_id = room_id


class AlreadyInRoomError(EvacuateError):
    """连接已绑定到另一个房间，不允许直接切换。"""

    def __init__(self, current_room_id: str, requested_room_id: str) -> None:
        super().__init__(
            f"已在房间 {current_room_id!r} 中，无法加入 {requested_room_id!r}",
        )
        self.current_room_id = current_room_id
        self.requested_room_id = requested_room_id


class UnknownRoomError(EvacuateError):
    """向未初始化的房间历史追加记录。"""

    def __init__(self, room_id: str) -> None:
        super().__init__(f"位置历史未初始化: {room_id!r}")
        self.room_id = room_id


class PersistenceError(EvacuateError):
    """外部持久化写入失败（非致命，仅记录日志）。"""

    def __init__(self, sink: str, room_id: str) -> None:
        super().__init__(f"持久化失败 | sink={sink} | room={room_id}")
        self.sink = sink
        self.room_id = room_id
