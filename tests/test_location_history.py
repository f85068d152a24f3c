"""
tests.test_location_history
~~~~~~~~~~~~~~~~~~~~~~~~~~~

LocationHistoryStore + PersistenceDispatcher 单元测试。
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from evacuate.core.exceptions import UnknownRoomError
from evacuate.schemas.location_events import LocationUpdateRecord, Position
from evacuate.services.location_history import LocationHistoryStore
from evacuate.services.persistence import PersistenceDispatcher


def make_record(room_id: str = "abc12", user_id: str = "c1", lat: float = 1.0) -> LocationUpdateRecord:
    return LocationUpdateRecord(
        room_id=room_id,
        user_id=user_id,
        nickname=user_id,
        position=Position(lat=lat, lng=2.0),
    )


def make_sink(name: str = "fake", side_effect: Exception | None = None) -> MagicMock:
    sink = MagicMock()
    sink.name = name
    sink.persist = AsyncMock(side_effect=side_effect)
    return sink


# ── 内存历史 ──────────────────────────────────────────────────────────

class TestLocationHistoryStore:

    def test_append_before_init_raises(self) -> None:
        store = LocationHistoryStore()

        with pytest.raises(UnknownRoomError):
            store.append("abc12", make_record())

    def test_read_unknown_room_returns_empty(self) -> None:
        assert LocationHistoryStore().read_all("nope") == []

    def test_records_keep_append_order(self) -> None:
        """read_all 应按追加顺序返回。"""
        store = LocationHistoryStore()
        store.init_room("abc12")
        records = [make_record(user_id=f"c{i % 3}", lat=float(i)) for i in range(10)]
        for record in records:
            store.append("abc12", record)

        assert store.read_all("abc12") == records

    def test_init_room_is_idempotent(self) -> None:
        """重复 init_room 不应清空已有记录。"""
        store = LocationHistoryStore()
        store.init_room("abc12")
        store.append("abc12", make_record())
        store.init_room("abc12")

        assert store.count("abc12") == 1

    def test_read_all_returns_copy(self) -> None:
        store = LocationHistoryStore()
        store.init_room("abc12")
        store.append("abc12", make_record())

        store.read_all("abc12").clear()

        assert store.count("abc12") == 1

    def test_read_page(self) -> None:
        store = LocationHistoryStore()
        store.init_room("abc12")
        for i in range(5):
            store.append("abc12", make_record(lat=float(i)))

        page = store.read_page("abc12", skip=1, limit=2)

        assert [r.position.lat for r in page] == [1.0, 2.0]
        assert store.read_page("nope") == []

    def test_snapshot_covers_all_rooms(self) -> None:
        store = LocationHistoryStore()
        store.init_room("abc12")
        store.init_room("zzz99")
        store.append("abc12", make_record())

        snapshot = store.snapshot()

        assert set(snapshot) == {"abc12", "zzz99"}
        assert len(snapshot["abc12"]) == 1
        assert snapshot["zzz99"] == []

    def test_record_wire_format(self) -> None:
        """对外 JSON 结构沿用 room_id / user_id 字段，时间为 ISO 字符串。"""
        wire = make_record().to_wire()

        assert wire["room_id"] == "abc12"
        assert wire["user_id"] == "c1"
        assert wire["position"] == {"lat": 1.0, "lng": 2.0}
        assert isinstance(wire["timestamp"], str)


# ── 持久化调度 ────────────────────────────────────────────────────────

class TestPersistenceDispatcher:

    @pytest.mark.asyncio
    async def test_append_submits_to_every_sink(self) -> None:
        sink_a = make_sink("a")
        sink_b = make_sink("b")
        store = LocationHistoryStore(persistence=PersistenceDispatcher([sink_a, sink_b]))
        store.init_room("abc12")
        record = make_record()

        store.append("abc12", record)
        await store.persistence.drain()

        sink_a.persist.assert_awaited_once_with(record)
        sink_b.persist.assert_awaited_once_with(record)

    @pytest.mark.asyncio
    async def test_append_does_not_wait_for_sink(self) -> None:
        """持久化是后台任务：append 返回时内存中已有记录，写入尚未完成。"""
        release = asyncio.Event()

        async def slow_persist(record: LocationUpdateRecord) -> None:
            await release.wait()

        sink = make_sink()
        sink.persist = AsyncMock(side_effect=slow_persist)
        dispatcher = PersistenceDispatcher([sink])
        store = LocationHistoryStore(persistence=dispatcher)
        store.init_room("abc12")

        store.append("abc12", make_record())

        assert store.count("abc12") == 1
        assert dispatcher.pending_count == 1

        release.set()
        await dispatcher.drain()
        assert dispatcher.pending_count == 0

    @pytest.mark.asyncio
    async def test_sink_failure_is_counted_not_raised(self) -> None:
        """sink 失败只计数，不影响内存记录和其他 sink。"""
        broken = make_sink("broken", side_effect=RuntimeError("db down"))
        healthy = make_sink("healthy")
        dispatcher = PersistenceDispatcher([broken, healthy])
        store = LocationHistoryStore(persistence=dispatcher)
        store.init_room("abc12")

        store.append("abc12", make_record())
        await dispatcher.drain()

        assert dispatcher.failure_count == 1
        assert store.count("abc12") == 1
        healthy.persist.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_sinks_schedules_nothing(self) -> None:
        dispatcher = PersistenceDispatcher()
        dispatcher.submit(make_record())

        assert dispatcher.pending_count == 0
        await dispatcher.drain()
