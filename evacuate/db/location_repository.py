"""
evacuate.db.location_repository
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

位置记录持久化仓库 —— 封装 MongoDB ``location_history`` 集合。

每条位置记录一个文档（扁平设计），便于按房间分页查询。
集合在首次写入时自动创建并建立索引。
"""
from __future__ import annotations

from datetime import datetime
from typing import TypedDict

from motor.motor_asyncio import AsyncIOMotorDatabase

from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import LocationUpdateRecord

logger = get_logger(__name__)

_COLLECTION_NAME = "location_history"


class LocationDocument(TypedDict):
    """``location_history`` 集合中的单条文档。"""
    room_id: str
    user_id: str
    nickname: str
    position: dict[str, float]
    timestamp: datetime


class LocationRepository:
    """位置记录持久化仓库，同时作为 ``PersistenceDispatcher`` 的一个 sink。

    Attributes:
        db: MongoDB 数据库实例。
    """

    name = "mongo"

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """确保索引已创建（惰性，首次操作时执行一次）。"""
        if self._indexes_created:
            return
        await self._collection.create_index(
            [("room_id", 1), ("timestamp", 1)],
            name="idx_room_time",
        )
        self._indexes_created = True
        logger.debug("location_history 索引已就绪")

    async def persist(self, record: LocationUpdateRecord) -> None:
        await self.save_location(record)

    async def save_location(self, record: LocationUpdateRecord) -> None:
        """插入一条位置记录。"""
        await self._ensure_indexes()
        doc: LocationDocument = {
            "room_id": record.room_id,
            "user_id": record.user_id,
            "nickname": record.nickname,
            "position": record.position.model_dump(),
            "timestamp": record.timestamp,
        }
        await self._collection.insert_one(doc)
        logger.debug("[save_location] 已写入 | room=%s | user=%s", record.room_id, record.user_id)

    async def get_history(
        self,
        room_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> list[LocationDocument]:
        """按时间正序分页读取某个房间的位置记录。"""
        await self._ensure_indexes()
        cursor = (
            self._collection
            .find({"room_id": room_id}, {"_id": 0})
            .sort("timestamp", 1)
            .skip(skip)
            .limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def count_locations(self, room_id: str) -> int:
        """获取指定房间的记录总数。"""
        await self._ensure_indexes()
        return await self._collection.count_documents({"room_id": room_id})
