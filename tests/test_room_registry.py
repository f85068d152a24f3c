"""
tests.test_room_registry
~~~~~~~~~~~~~~~~~~~~~~~~

RoomRegistry 与房间码生成单元测试。
"""
from __future__ import annotations

import pytest

from evacuate.core.exceptions import RoomNotFoundError
from evacuate.services.room_registry import RoomRegistry, new_room_id


class TestCreateOrGetCreator:
    """测试"检查并设置"的房主登记。"""

    def test_first_call_creates(self) -> None:
        """未使用的房间码应创建房间，调用者成为房主且在成员中。"""
        registry = RoomRegistry()

        assert registry.create_or_get_creator("abc12", "c1") is True
        assert registry.exists("abc12")
        assert registry.creator_of("abc12") == "c1"
        assert registry.members_of("abc12") == ["c1"]

    def test_second_call_does_not_create(self) -> None:
        """同一房间码第二次调用应返回 False，房主不变。"""
        registry = RoomRegistry()
        registry.create_or_get_creator("abc12", "c1")

        assert registry.create_or_get_creator("abc12", "c2") is False
        assert registry.creator_of("abc12") == "c1"
        assert registry.members_of("abc12") == ["c1"]

    def test_blank_room_id_is_accepted(self) -> None:
        """空白房间码不做特殊处理。"""
        registry = RoomRegistry()

        assert registry.create_or_get_creator("  ", "c1") is True
        assert registry.exists("  ")


class TestMembership:
    """测试成员增删与销毁。"""

    def setup_method(self) -> None:
        self.registry = RoomRegistry()
        self.registry.create_or_get_creator("abc12", "c1")

    def test_members_keep_join_order(self) -> None:
        self.registry.add_member("abc12", "c2")
        self.registry.add_member("abc12", "c3")

        assert self.registry.members_of("abc12") == ["c1", "c2", "c3"]

    def test_add_member_twice_is_noop(self) -> None:
        self.registry.add_member("abc12", "c2")
        self.registry.add_member("abc12", "c2")

        assert self.registry.members_of("abc12") == ["c1", "c2"]

    def test_remove_member(self) -> None:
        self.registry.add_member("abc12", "c2")
        self.registry.remove_member("abc12", "c2")

        assert self.registry.members_of("abc12") == ["c1"]

    def test_add_member_to_unknown_room_raises(self) -> None:
        with pytest.raises(RoomNotFoundError):
            self.registry.add_member("nope", "c2")

    def test_destroy_removes_everything(self) -> None:
        """destroy 后房间不存在，查询返回空。"""
        self.registry.add_member("abc12", "c2")
        self.registry.destroy("abc12")

        assert not self.registry.exists("abc12")
        assert self.registry.creator_of("abc12") is None
        assert self.registry.members_of("abc12") == []
        assert self.registry.room_count == 0

    def test_destroy_unknown_room_is_noop(self) -> None:
        self.registry.destroy("nope")

        assert self.registry.room_count == 1

    def test_recreate_after_destroy(self) -> None:
        """销毁后同一房间码可以被新的房主重新创建。"""
        self.registry.destroy("abc12")

        assert self.registry.create_or_get_creator("abc12", "c9") is True
        assert self.registry.creator_of("abc12") == "c9"

    def test_list_rooms(self) -> None:
        self.registry.add_member("abc12", "c2")
        self.registry.create_or_get_creator("zzz99", "c3")

        rooms = {r.room_id: r for r in self.registry.list_rooms()}

        assert set(rooms) == {"abc12", "zzz99"}
        assert rooms["abc12"].creator_id == "c1"
        assert rooms["abc12"].member_count == 2


class TestNewRoomId:
    """测试房间码生成。"""

    def test_default_length_and_alphabet(self) -> None:
        room_id = new_room_id()

        assert len(room_id) == 5
        assert room_id.isalnum()
        assert room_id == room_id.lower()

    def test_custom_length(self) -> None:
        assert len(new_room_id(8)) == 8
