"""
evacuate.services.location_system
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间生命周期控制器 —— 位置共享的核心状态机。

每个连接的状态: ``未加入 → 已加入 → 已终止``。

- ``join_room``            → 首次加入某个房间码即创建房间并成为房主，之后的加入者成为成员
- ``update_location``      → 追加位置历史，再广播给房间内所有成员（包括发送者）
- ``get_location_history`` → 按房间码返回现有历史，不做成员校验
- ``disconnect``           → 房主断开则级联销毁房间；成员断开则通知房主

所有方法都是同步的，中间没有 ``await``，因此在单线程事件循环中每个事件
都是一个不可分割的处理单元；持久化以后台任务方式进行，不阻塞广播。
"""
from __future__ import annotations

from evacuate.core.exceptions import EvacuateError, UnknownRoomError
from evacuate.core.logging import get_logger
from evacuate.core.rate_limit import LocationUpdateThrottle
from evacuate.schemas.location_events import (
    CONNECTED,
    LOCATION_HISTORY,
    ROOM_DESTROYED,
    ROOM_JOINED,
    UPDATE_LOCATION_RESPONSE,
    USER_JOINED_ROOM,
    USER_LEFT_ROOM,
    ConnectedEvent,
    JoinRoomRequest,
    LocationBroadcastEvent,
    LocationHistoryEvent,
    LocationHistoryRequest,
    LocationUpdateRecord,
    Position,
    RoomDestroyedEvent,
    RoomJoinedEvent,
    UpdateLocationRequest,
    UserJoinedRoomEvent,
    UserLeftRoomEvent,
)
from evacuate.services.location_history import LocationHistoryStore
from evacuate.services.persistence import PersistenceDispatcher
from evacuate.services.presence import PresenceSession, SessionTable
from evacuate.services.room_broadcaster import RoomBroadcaster, Transport
from evacuate.services.room_registry import RoomRegistry

logger = get_logger(__name__)


class LocationSystem:
    """位置共享系统（进程内单例，在 FastAPI lifespan 中创建并挂载于 app.state）。

    注册表和历史存储只由本类修改。

    Attributes:
        registry: 房间注册表。
        history: 位置历史存储。
        sessions: 连接会话表。
        broadcaster: 房间广播器。
        throttle: 位置上报节流器。
    """

    def __init__(
        self,
        transport: Transport,
        registry: RoomRegistry | None = None,
        history: LocationHistoryStore | None = None,
        sessions: SessionTable | None = None,
        throttle: LocationUpdateThrottle | None = None,
    ) -> None:
        self.registry: RoomRegistry = registry or RoomRegistry()
        self.history: LocationHistoryStore = history or LocationHistoryStore()
        self.sessions: SessionTable = sessions or SessionTable()
        self.broadcaster = RoomBroadcaster(self.registry, transport)
        self.throttle: LocationUpdateThrottle = throttle or LocationUpdateThrottle()

    @property
    def persistence(self) -> PersistenceDispatcher | None:
        return self.history.persistence

    # ── 连接 ──────────────────────────────────────────────────────────

    def connect(self, connection_id: str) -> PresenceSession:
        """为新连接创建会话，并告知客户端自己的连接标识。"""
        session = self.sessions.open(connection_id)
        self.broadcaster.send_to(connection_id, CONNECTED, ConnectedEvent(user_id=connection_id))
        logger.info("用户已连接 | conn=%s", connection_id)
        return session

    # ── 加入 / 创建 ───────────────────────────────────────────────────

    def join_room(self, connection_id: str, request: JoinRoomRequest) -> bool:
        """处理加入请求，返回是否成功。

        结果（``roomJoined``）只发给请求者；房间已存在时另外通知房主。
        """
        session = self.sessions.get(connection_id)
        if session is None:
            logger.warning("未知连接的加入请求，忽略 | conn=%s", connection_id)
            return False

        room_id = request.room_id
        nickname = request.nickname or connection_id

        try:
            if session.is_joined:
                # 同一房间重复加入是幂等的；换房间会抛出 AlreadyInRoomError
                self.sessions.bind_room(session, room_id, nickname)
                logger.debug("重复加入同一房间 | room=%s | conn=%s", room_id, connection_id)
            elif self.registry.create_or_get_creator(room_id, connection_id):
                self.history.init_room(room_id)
                self.sessions.bind_room(session, room_id, nickname)
                if request.position is not None:
                    self._record_and_broadcast(session, request.position)
                logger.info(
                    "[joinRoom] 创建房间 '%s' | creator=%s | nickname='%s'",
                    room_id, connection_id, session.nickname,
                )
            else:
                self.registry.add_member(room_id, connection_id)
                self.sessions.bind_room(session, room_id, nickname)
                logger.info(
                    "[joinRoom] '%s' nickname '%s' 加入已有房间 '%s'",
                    connection_id, session.nickname, room_id,
                )
                self._notify_creator_joined(session)
        except EvacuateError as e:
            logger.warning("[joinRoom] 加入失败 | conn=%s | %s", connection_id, e)
            self.broadcaster.send_to(
                connection_id, ROOM_JOINED, RoomJoinedEvent(status="ERROR", message=str(e)),
            )
            return False

        self.broadcaster.send_to(
            connection_id,
            ROOM_JOINED,
            RoomJoinedEvent(status="OK", nickname=session.nickname, room_id=session.room_id),
        )
        return True

    def _notify_creator_joined(self, session: PresenceSession) -> None:
        creator_id = self.registry.creator_of(session.room_id)
        if creator_id is None or creator_id == session.connection_id:
            return
        self.broadcaster.send_to(
            creator_id,
            USER_JOINED_ROOM,
            UserJoinedRoomEvent(
                user_id=session.connection_id,
                nickname=session.nickname,
                total_connected_users=self.registry.members_of(session.room_id),
            ),
        )

    # ── 位置上报 ──────────────────────────────────────────────────────

    def update_location(self, connection_id: str, request: UpdateLocationRequest) -> bool:
        """记录并广播一次位置上报；未加入房间的上报直接丢弃。"""
        session = self.sessions.get(connection_id)
        if session is None or not session.is_joined:
            logger.debug("[updateLocation] 连接未加入房间，丢弃 | conn=%s", connection_id)
            return False
        if not self.registry.exists(session.room_id):
            logger.warning(
                "[updateLocation] 房间已不存在，丢弃 | room=%s | conn=%s",
                session.room_id, connection_id,
            )
            return False
        if not self.throttle.is_allowed(connection_id):
            logger.debug("[updateLocation] 上报过快，丢弃 | conn=%s", connection_id)
            return False

        logger.debug("[updateLocation] 用户 %s => room: %s", connection_id, session.room_id)
        self._record_and_broadcast(session, request.position)
        return True

    def _record_and_broadcast(self, session: PresenceSession, position: Position) -> None:
        room_id = session.room_id
        record = LocationUpdateRecord(
            room_id=room_id,
            user_id=session.connection_id,
            nickname=session.nickname,
            position=position,
        )
        try:
            self.history.append(room_id, record)
        except UnknownRoomError as e:
            # 历史丢弃，但房间仍存活时照常广播
            logger.warning("%s，丢弃本条记录", e)

        self.broadcaster.broadcast(
            room_id,
            UPDATE_LOCATION_RESPONSE,
            LocationBroadcastEvent(
                user_id=session.connection_id,
                nickname=session.nickname,
                position=position,
            ),
        )

    # ── 历史查询 ──────────────────────────────────────────────────────

    def get_location_history(
        self, connection_id: str, request: LocationHistoryRequest,
    ) -> list[LocationUpdateRecord]:
        """把房间现有历史回复给请求者（房间已销毁或不存在时可能为空）。"""
        records = self.history.read_all(request.room_id)
        self.broadcaster.send_to(
            connection_id, LOCATION_HISTORY, LocationHistoryEvent(history=records),
        )
        return records

    # ── 断开 ──────────────────────────────────────────────────────────

    def disconnect(self, connection_id: str) -> None:
        """处理连接断开，每个连接只生效一次。"""
        session = self.sessions.get(connection_id)
        if session is None:
            return

        logger.info(
            "用户断开 | room=%s | conn=%s | nickname=%s",
            session.room_id, connection_id, session.nickname,
        )
        try:
            if session.is_joined:
                if self.registry.creator_of(session.room_id) == connection_id:
                    self._destroy_room(session.room_id)
                else:
                    self._leave_room(session.room_id, connection_id)
        except EvacuateError as e:
            logger.warning("断开处理异常 | conn=%s | %s", connection_id, e)
        finally:
            self.sessions.close(connection_id)
            self.throttle.remove_client(connection_id)

    def _destroy_room(self, room_id: str) -> None:
        """房主断开：通知全部成员后销毁房间，位置历史保留。"""
        members = self.registry.members_of(room_id)
        self.broadcaster.broadcast(room_id, ROOM_DESTROYED, RoomDestroyedEvent())

        creator_id = self.registry.creator_of(room_id)
        for member_id in members:
            if member_id == creator_id:
                continue
            member_session = self.sessions.get(member_id)
            if member_session is not None:
                self.sessions.release(member_session)

        self.registry.destroy(room_id)
        logger.info("房主断开，房间已销毁 | room=%s | 通知成员: %d", room_id, len(members))

    def _leave_room(self, room_id: str, connection_id: str) -> None:
        """普通成员断开：移出房间并通知房主。"""
        self.registry.remove_member(room_id, connection_id)
        creator_id = self.registry.creator_of(room_id)
        if creator_id is None:
            return
        self.broadcaster.send_to(
            creator_id,
            USER_LEFT_ROOM,
            UserLeftRoomEvent(
                user_id=connection_id,
                total_connected_users=self.registry.members_of(room_id),
            ),
        )
