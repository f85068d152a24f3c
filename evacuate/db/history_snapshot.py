"""
evacuate.db.history_snapshot
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

位置历史 JSON 快照 —— 每次追加后把全部房间的历史整体写入一个文件。

仅用于演示和排查，写入在线程池中执行，不阻塞事件循环。
"""
from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable

from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import LocationUpdateRecord

logger = get_logger(__name__)

SnapshotSource = Callable[[], dict[str, list[LocationUpdateRecord]]]


class HistorySnapshotWriter:
    """把 ``LocationHistoryStore.snapshot()`` 写成缩进 JSON 文件。

    Attributes:
        path: 目标文件路径。
    """

    name = "json-snapshot"

    def __init__(self, path: str, source: SnapshotSource) -> None:
        self.path = path
        self._source = source
        self._lock = asyncio.Lock()

    async def persist(self, record: LocationUpdateRecord) -> None:
        # 每次都写最新的完整快照，本条记录已包含在内
        payload = {
            room_id: [r.to_wire() for r in records]
            for room_id, records in self._source().items()
        }
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write, payload)

    def _write(self, payload: dict) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
