"""
tests.test_room_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~

房间 REST 接口测试。
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from evacuate.main import app
from evacuate.schemas.location_events import JoinRoomRequest, Position, UpdateLocationRequest


@pytest.fixture()
def client(no_rate_limit):
    with TestClient(app) as test_client:
        yield test_client


def seed_room(client: TestClient) -> None:
    """直接通过 LocationSystem 准备一个有两条记录的房间。"""
    system = client.app.state.location_system
    system.connect("c1")
    system.join_room("c1", JoinRoomRequest(room_id="abc12", nickname="Alice"))
    for lat in (1, 2):
        system.update_location("c1", UpdateLocationRequest(position=Position(lat=lat, lng=0)))


class TestSystemEndpoints:

    def test_welcome(self, client) -> None:
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "Welcome to Evacuate Server!"

    def test_health(self, client) -> None:
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert body["rooms"] == 0
        assert body["persistence_failures"] == 0


class TestRoomEndpoints:

    def test_create_room_code(self, client) -> None:
        body = client.post("/api/rooms").json()

        assert body["code"] == 200
        assert len(body["data"]["room_id"]) == 5

    def test_list_rooms(self, client) -> None:
        seed_room(client)

        body = client.get("/api/rooms").json()

        assert [r["room_id"] for r in body["data"]] == ["abc12"]
        assert body["data"][0]["creator_id"] == "c1"
        assert body["data"][0]["member_count"] == 1

    def test_room_info_not_found(self, client) -> None:
        response = client.get("/api/rooms/nope")

        assert response.status_code == 404
        assert response.json()["code"] == 404
        assert response.json()["data"] is None

    def test_history_pagination(self, client) -> None:
        seed_room(client)

        body = client.get("/api/rooms/abc12/history", params={"skip": 1, "limit": 5}).json()

        assert body["data"]["total"] == 2
        assert [r["position"]["lat"] for r in body["data"]["records"]] == [2.0]

    def test_history_survives_room_destruction(self, client) -> None:
        seed_room(client)
        client.app.state.location_system.disconnect("c1")

        assert client.get("/api/rooms/abc12").status_code == 404
        body = client.get("/api/rooms/abc12/history").json()
        assert body["data"]["total"] == 2

    def test_archive_requires_mongo(self, client) -> None:
        response = client.get("/api/rooms/abc12/archive")

        assert response.status_code == 404
