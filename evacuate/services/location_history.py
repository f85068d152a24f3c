"""
evacuate.services.location_history
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

位置历史存储 —— 按房间码分区的只追加日志。

房间销毁后历史不会被清除，按房间码查询历史仍能拿到销毁前的记录。
追加时是否允许（房间是否存活）由调用方判断，存储本身只检查
``init_room`` 是否调用过。
"""
from __future__ import annotations

from evacuate.core.exceptions import UnknownRoomError
from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import LocationUpdateRecord
from evacuate.services.persistence import PersistenceDispatcher

logger = get_logger(__name__)


class LocationHistoryStore:
    """内存中的位置历史，写入后交给 ``PersistenceDispatcher`` 异步落盘。

    Attributes:
        persistence: 可选的持久化调度器（为 None 时只保存在内存）。
    """

    def __init__(self, persistence: PersistenceDispatcher | None = None) -> None:
        self.persistence = persistence
        self._logs: dict[str, list[LocationUpdateRecord]] = {}

    def init_room(self, room_id: str) -> None:
        """为房间创建空日志；已存在时保留原有记录。"""
        self._logs.setdefault(room_id, [])

    def append(self, room_id: str, record: LocationUpdateRecord) -> None:
        """追加一条记录。

        Raises:
            UnknownRoomError: 该房间从未调用过 ``init_room``。
        """
        log = self._logs.get(room_id)
        if log is None:
            raise UnknownRoomError(room_id)
        log.append(record)
        if self.persistence is not None:
            self.persistence.submit(record)

    def read_all(self, room_id: str) -> list[LocationUpdateRecord]:
        """按追加顺序返回全部记录；未知房间返回空列表。"""
        return list(self._logs.get(room_id, ()))

    def read_page(self, room_id: str, skip: int = 0, limit: int = 100) -> list[LocationUpdateRecord]:
        """分页读取（用于 HTTP 历史回看）。"""
        return self._logs.get(room_id, [])[skip:skip + limit]

    def count(self, room_id: str) -> int:
        return len(self._logs.get(room_id, ()))

    def snapshot(self) -> dict[str, list[LocationUpdateRecord]]:
        """返回所有房间历史的浅拷贝（JSON 快照用）。"""
        return {room_id: list(log) for room_id, log in self._logs.items()}
