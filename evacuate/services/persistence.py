"""
evacuate.services.persistence
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

位置记录的异步持久化调度。

内存追加是同步且权威的；写库 / 写文件只是"尽力而为"的后台副作用：
每条记录为每个 sink 创建一个后台任务，广播不会等待它们完成，
失败只记录日志并计数，不回滚内存数据。
"""
from __future__ import annotations

import asyncio
from typing import Protocol

from evacuate.core.exceptions import PersistenceError
from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import LocationUpdateRecord

logger = get_logger(__name__)


class LocationSink(Protocol):
    """持久化目标（MongoDB 集合、JSON 快照文件等）。"""

    name: str

    async def persist(self, record: LocationUpdateRecord) -> None: ...


class PersistenceDispatcher:
    """把位置记录分发给所有已配置的 sink，不阻塞调用方。

    Attributes:
        sinks: 已启用的持久化目标。
        failure_count: 累计失败次数（通过 ``/health`` 暴露）。
    """

    def __init__(self, sinks: list[LocationSink] | None = None) -> None:
        self.sinks: list[LocationSink] = list(sinks or [])
        self.failure_count: int = 0
        self._pending: set[asyncio.Task[None]] = set()

    def submit(self, record: LocationUpdateRecord) -> None:
        """为每个 sink 创建后台写入任务。必须在事件循环中调用。"""
        for sink in self.sinks:
            task = asyncio.create_task(self._run(sink, record))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run(self, sink: LocationSink, record: LocationUpdateRecord) -> None:
        try:
            await sink.persist(record)
        except Exception as e:
            # 持久化失败不应影响内存数据和广播
            self.failure_count += 1
            error = PersistenceError(sink.name, record.room_id)
            logger.warning("%s: %s", error, e, exc_info=True)

    async def drain(self) -> None:
        """等待所有未完成的写入任务（应用关闭时调用）。"""
        if self._pending:
            logger.info("等待 %d 个持久化任务完成", len(self._pending))
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
