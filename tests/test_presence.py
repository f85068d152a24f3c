"""
tests.test_presence
~~~~~~~~~~~~~~~~~~~

PresenceSession / SessionTable 单元测试。
"""
from __future__ import annotations

import pytest

from evacuate.core.exceptions import AlreadyInRoomError
from evacuate.services.presence import SessionState, SessionTable


class TestSessionTable:

    def test_open_defaults(self) -> None:
        """新会话未加入房间，昵称默认为连接标识。"""
        table = SessionTable()
        session = table.open("c1")

        assert session.state is SessionState.UNJOINED
        assert session.room_id is None
        assert session.nickname == "c1"
        assert table.get("c1") is session

    def test_open_twice_returns_same_session(self) -> None:
        table = SessionTable()

        assert table.open("c1") is table.open("c1")
        assert len(table) == 1

    def test_bind_room(self) -> None:
        table = SessionTable()
        session = table.open("c1")
        table.bind_room(session, "abc12", "Alice")

        assert session.is_joined
        assert session.room_id == "abc12"
        assert session.nickname == "Alice"

    def test_rebind_same_room_is_idempotent(self) -> None:
        """重复绑定同一房间不报错，昵称保持首次的值。"""
        table = SessionTable()
        session = table.open("c1")
        table.bind_room(session, "abc12", "Alice")
        table.bind_room(session, "abc12", "Mallory")

        assert session.room_id == "abc12"
        assert session.nickname == "Alice"

    def test_bind_different_room_raises(self) -> None:
        table = SessionTable()
        session = table.open("c1")
        table.bind_room(session, "abc12", "Alice")

        with pytest.raises(AlreadyInRoomError):
            table.bind_room(session, "zzz99", "Alice")
        assert session.room_id == "abc12"

    def test_release_returns_to_unjoined(self) -> None:
        table = SessionTable()
        session = table.open("c1")
        table.bind_room(session, "abc12", "Alice")
        table.release(session)

        assert session.state is SessionState.UNJOINED
        assert session.room_id is None

    def test_close_only_once(self) -> None:
        """close 第一次返回会话并标记终止，第二次返回 None。"""
        table = SessionTable()
        table.open("c1")

        session = table.close("c1")

        assert session is not None
        assert session.state is SessionState.TERMINATED
        assert table.close("c1") is None
        assert table.get("c1") is None
