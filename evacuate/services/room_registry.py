"""
evacuate.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间注册表 —— 房间是否存在的唯一事实来源。

记录每个房间码对应的房主连接和当前成员。所有方法都是同步的，
在单线程事件循环中天然原子：``create_or_get_creator`` 的"检查并设置"
不会被其他事件打断，因此同一个房间码最多只会有一个房主。

多进程部署时需要换成带条件写入的外部存储（例如 Redis ``SET NX``），
接口保持不变。
"""
from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone

from evacuate.core.exceptions import RoomNotFoundError
from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import RoomInfoData

logger = get_logger(__name__)

_ROOM_ID_ALPHABET: str = string.ascii_lowercase + string.digits


def new_room_id(length: int = 5) -> str:
    """生成一个随机房间码（小写字母 + 数字）。

    不检查是否与现有房间冲突，首次加入时由注册表决定创建还是加入。
    """
    return "".join(secrets.choice(_ROOM_ID_ALPHABET) for _ in range(length))


class Room:
    """一个存活中的房间。

    Attributes:
        room_id: 房间码。
        creator_id: 房主连接标识，房间存活期间不变。
        members: 当前成员（含房主），用 dict 保留加入顺序。
        created_at: 创建时间（UTC）。
    """

    def __init__(self, room_id: str, creator_id: str) -> None:
        self.room_id = room_id
        self.creator_id = creator_id
        self.members: dict[str, None] = {creator_id: None}
        self.created_at = datetime.now(timezone.utc)

    def info(self) -> RoomInfoData:
        """返回房间摘要信息。"""
        return RoomInfoData(
            room_id=self.room_id,
            creator_id=self.creator_id,
            member_count=len(self.members),
            created_at=self.created_at,
        )


class RoomRegistry:
    """进程内房间注册表，只由 ``LocationSystem`` 修改。"""

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def exists(self, room_id: str) -> bool:
        return room_id in self._rooms

    def create_or_get_creator(self, room_id: str, connection_id: str) -> bool:
        """房间码未被使用时登记房主并返回 ``True``，否则不做任何改动返回 ``False``。"""
        if room_id in self._rooms:
            return False
        self._rooms[room_id] = Room(room_id, connection_id)
        logger.info("房间已创建 | room=%s | creator=%s", room_id, connection_id)
        return True

    def add_member(self, room_id: str, connection_id: str) -> None:
        self._require(room_id).members[connection_id] = None

    def remove_member(self, room_id: str, connection_id: str) -> None:
        room = self._require(room_id)
        room.members.pop(connection_id, None)

    def members_of(self, room_id: str) -> list[str]:
        """返回当前成员列表（按加入顺序）；房间不存在时返回空列表。"""
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return list(room.members)

    def creator_of(self, room_id: str) -> str | None:
        room = self._rooms.get(room_id)
        return room.creator_id if room is not None else None

    def destroy(self, room_id: str) -> None:
        """移除房间的全部注册信息，房间不存在时为空操作。"""
        if self._rooms.pop(room_id, None) is not None:
            logger.info("房间已销毁 | room=%s", room_id)

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def list_rooms(self) -> list[RoomInfoData]:
        """列出所有存活房间的摘要信息。"""
        return [room.info() for room in self._rooms.values()]

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def _require(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)
        return room
