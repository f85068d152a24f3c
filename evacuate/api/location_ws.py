"""
evacuate.api.location_ws
~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 实时交互接口 —— 位置共享房间。

提供 ``/ws`` 端点。每一帧都是 JSON 文本 ``{"event": ..., "data": {...}}``。

客户端事件:
  - ``joinRoom {roomId, nickname?, position?}``  —— 加入房间（首次使用该房间码即创建）
  - ``updateLocation {position}``                —— 上报位置，广播给房间内所有成员
  - ``getLocationHistory {roomId}``              —— 获取房间位置历史

服务端事件:
  - ``connected {userId}``                       —— 连接建立后告知本连接标识
  - ``roomJoined`` / ``userJoinedRoom`` / ``userLeftRoom``
  - ``updateLocationResponse`` / ``locationHistory`` / ``roomDestroyed``
  - ``error {message}``                          —— 无法识别的消息或非文本帧
"""
from __future__ import annotations

import uuid
from collections.abc import Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from evacuate.core.logging import get_logger, request_id_ctx_var
from evacuate.schemas.location_events import (
    ERROR,
    GET_LOCATION_HISTORY,
    JOIN_ROOM,
    ROOM_JOINED,
    UPDATE_LOCATION,
    ErrorEvent,
    InboundEnvelope,
    JoinRoomRequest,
    LocationHistoryRequest,
    RoomJoinedEvent,
    UpdateLocationRequest,
)
from evacuate.services.connection_hub import ConnectionHub
from evacuate.services.location_system import LocationSystem

logger = get_logger(__name__)

router: APIRouter = APIRouter()


# ── 事件分发 ──────────────────────────────────────────────────────────

def _on_join_room(system: LocationSystem, connection_id: str, data: dict) -> None:
    try:
        request = JoinRoomRequest.model_validate(data)
    except ValidationError as e:
        logger.warning("[joinRoom] 参数无效 | %s", e.errors(include_url=False))
        system.broadcaster.send_to(
            connection_id, ROOM_JOINED, RoomJoinedEvent(status="ERROR", message="参数无效"),
        )
        return
    system.join_room(connection_id, request)


def _on_update_location(system: LocationSystem, connection_id: str, data: dict) -> None:
    try:
        request = UpdateLocationRequest.model_validate(data)
    except ValidationError:
        logger.debug("[updateLocation] 参数无效，丢弃 | data=%s", data)
        return
    system.update_location(connection_id, request)


def _on_get_location_history(system: LocationSystem, connection_id: str, data: dict) -> None:
    try:
        request = LocationHistoryRequest.model_validate(data)
    except ValidationError:
        system.broadcaster.send_to(connection_id, ERROR, ErrorEvent(message="缺少 roomId"))
        return
    system.get_location_history(connection_id, request)


_HANDLERS: dict[str, Callable[[LocationSystem, str, dict], None]] = {
    JOIN_ROOM: _on_join_room,
    UPDATE_LOCATION: _on_update_location,
    GET_LOCATION_HISTORY: _on_get_location_history,
}


def dispatch_frame(system: LocationSystem, connection_id: str, raw: str) -> None:
    """解析一帧客户端消息并交给对应的处理函数。

    任何格式错误都只回复 ``error`` 事件，不会中断连接。
    """
    try:
        envelope = InboundEnvelope.model_validate_json(raw)
    except ValidationError:
        logger.warning("无法识别的消息 | conn=%s | raw=%.200s", connection_id, raw)
        system.broadcaster.send_to(connection_id, ERROR, ErrorEvent(message="无法识别的消息"))
        return
    _HANDLERS[envelope.event](system, connection_id, envelope.data)


# ── 端点 ──────────────────────────────────────────────────────────────

@router.websocket("/ws")
async def websocket_location_endpoint(websocket: WebSocket) -> None:
    """位置共享 WebSocket 端点。

    连接断开（无论正常还是异常）时执行一次断开处理：
    房主断开会销毁房间，普通成员断开会通知房主。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    connection_id = uuid.uuid4().hex
    token = request_id_ctx_var.set(f"ws-{connection_id[:8]}")

    try:
        system: LocationSystem = websocket.app.state.location_system
        hub: ConnectionHub = websocket.app.state.connection_hub

        await websocket.accept()
        hub.register(connection_id, websocket)
        system.connect(connection_id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                raw: str | None = message.get("text")
                if raw is None:
                    logger.warning("收到非文本帧，忽略 | conn=%s", connection_id)
                    system.broadcaster.send_to(
                        connection_id, ERROR, ErrorEvent(message="仅支持 JSON 文本帧"),
                    )
                    continue

                # 单帧处理失败不影响连接
                try:
                    dispatch_frame(system, connection_id, raw)
                except Exception as e:
                    logger.error("消息处理异常: %s | conn=%s", e, connection_id, exc_info=True)
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 接收异常: %s | conn=%s", e, connection_id, exc_info=True)
        finally:
            # 先移除发送通道，断开处理中发给本连接的消息直接丢弃
            outbox = hub.detach(connection_id)
            system.disconnect(connection_id)
            if outbox is not None:
                await outbox.close()

    finally:
        request_id_ctx_var.reset(token)
