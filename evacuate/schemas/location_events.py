"""
evacuate.schemas.location_events
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 事件与房间相关的 Pydantic 模型。

线上协议字段沿用前端约定的 camelCase（``roomId``、``userId``…），
位置历史记录沿用数据库文档的 snake_case（``room_id``、``user_id``…）。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

JoinStatus = Literal["OK", "ERROR"]

# ── 事件名 ────────────────────────────────────────────────────────────

JOIN_ROOM = "joinRoom"
UPDATE_LOCATION = "updateLocation"
GET_LOCATION_HISTORY = "getLocationHistory"

CONNECTED = "connected"
ROOM_JOINED = "roomJoined"
USER_JOINED_ROOM = "userJoinedRoom"
USER_LEFT_ROOM = "userLeftRoom"
UPDATE_LOCATION_RESPONSE = "updateLocationResponse"
LOCATION_HISTORY = "locationHistory"
ROOM_DESTROYED = "roomDestroyed"
ERROR = "error"

InboundEvent = Literal["joinRoom", "updateLocation", "getLocationHistory"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Position(BaseModel):
    """地图坐标。"""

    lat: float = Field(..., ge=-90, le=90, description="纬度")
    lng: float = Field(..., ge=-180, le=180, description="经度")


class Envelope(BaseModel):
    """WebSocket 帧外层结构：``{"event": ..., "data": {...}}``。"""

    event: str = Field(..., description="事件名")
    data: dict[str, Any] = Field(default_factory=dict, description="事件负载")


class InboundEnvelope(Envelope):
    """客户端发来的帧，只接受已知事件。"""

    event: InboundEvent


# ── 入站负载 ──────────────────────────────────────────────────────────

class JoinRoomRequest(_CamelModel):
    """加入（或首次创建）房间。"""

    room_id: str = Field(..., alias="roomId", description="房间码")
    nickname: str | None = Field(default=None, description="显示名称")
    position: Position | None = Field(default=None, description="初始位置")


class UpdateLocationRequest(BaseModel):
    """位置上报。"""

    position: Position


class LocationHistoryRequest(_CamelModel):
    """按房间码获取位置历史。"""

    room_id: str = Field(..., alias="roomId", description="房间码")


# ── 出站负载 ──────────────────────────────────────────────────────────

class ConnectedEvent(_CamelModel):
    user_id: str = Field(..., serialization_alias="userId")


class RoomJoinedEvent(_CamelModel):
    """加入结果，只发给请求者本人。"""

    status: JoinStatus
    nickname: str | None = None
    room_id: str | None = Field(default=None, serialization_alias="roomId")
    message: str | None = Field(default=None, description="失败原因")


class UserJoinedRoomEvent(_CamelModel):
    """新成员加入，只通知房主。"""

    user_id: str = Field(..., serialization_alias="userId")
    nickname: str
    total_connected_users: list[str] = Field(
        ..., serialization_alias="totalConnectedUsers",
    )


class UserLeftRoomEvent(_CamelModel):
    """成员离开，只通知房主。"""

    user_id: str = Field(..., serialization_alias="userId")
    total_connected_users: list[str] = Field(
        ..., serialization_alias="totalConnectedUsers",
    )


class LocationBroadcastEvent(_CamelModel):
    """位置广播，发给房间内所有成员（包括发送者本人）。"""

    user_id: str = Field(..., serialization_alias="userId")
    nickname: str
    position: Position


class RoomDestroyedEvent(BaseModel):
    status: JoinStatus = "OK"


class ErrorEvent(BaseModel):
    message: str


# ── 位置记录 ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationUpdateRecord(BaseModel):
    """一条位置上报记录，创建后不可修改。"""

    model_config = ConfigDict(frozen=True)

    room_id: str = Field(..., description="所属房间码")
    user_id: str = Field(..., description="发送者连接标识")
    nickname: str = Field(..., description="发送者显示名称")
    position: Position
    timestamp: datetime = Field(default_factory=_utcnow, description="采集时间（UTC）")

    def to_wire(self) -> dict[str, Any]:
        """转换为对外 JSON 结构（时间为 ISO 字符串）。"""
        return self.model_dump(mode="json")


class LocationHistoryEvent(BaseModel):
    history: list[LocationUpdateRecord]


# ── HTTP 接口数据 ─────────────────────────────────────────────────────

class RoomInfoData(BaseModel):
    """房间摘要信息。"""

    room_id: str = Field(..., description="房间码")
    creator_id: str = Field(..., description="房主连接标识")
    member_count: int = Field(..., description="当前成员数（含房主）")
    created_at: datetime = Field(..., description="创建时间（UTC）")


class NewRoomData(BaseModel):
    room_id: str = Field(..., description="新生成的房间码")


class HistoryResponseData(BaseModel):
    """位置历史分页数据。"""

    room_id: str = Field(..., description="房间码")
    records: list[LocationUpdateRecord] = Field(..., description="位置记录列表")
    total: int = Field(..., description="该房间记录总数")
