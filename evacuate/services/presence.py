"""
evacuate.services.presence
~~~~~~~~~~~~~~~~~~~~~~~~~~

连接会话 —— 每个在线连接一份的临时状态（所在房间、显示名称）。

会话保存在以连接标识为键的旁路表中，而不是挂在 WebSocket 对象上，
传输层对象因此可以随时替换。
"""
from __future__ import annotations

from enum import Enum

from evacuate.core.exceptions import AlreadyInRoomError
from evacuate.core.logging import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    TERMINATED = "terminated"


class PresenceSession:
    """单个连接的会话状态。

    Attributes:
        connection_id: 传输层分配的连接标识。
        room_id: 已加入的房间码，未加入时为 ``None``。
        nickname: 显示名称，加入后不可修改。
        state: 当前状态。
    """

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.room_id: str | None = None
        self.nickname: str = connection_id
        self.state = SessionState.UNJOINED

    @property
    def is_joined(self) -> bool:
        return self.state is SessionState.JOINED

    def __repr__(self) -> str:
        return (
            f"PresenceSession(connection_id={self.connection_id!r}, "
            f"room_id={self.room_id!r}, state={self.state.value})"
        )


class SessionTable:
    """连接标识 → ``PresenceSession`` 的旁路表。"""

    def __init__(self) -> None:
        self._sessions: dict[str, PresenceSession] = {}

    def open(self, connection_id: str) -> PresenceSession:
        """为新连接创建会话；重复调用返回已有会话。"""
        session = self._sessions.get(connection_id)
        if session is None:
            session = PresenceSession(connection_id)
            self._sessions[connection_id] = session
        return session

    def get(self, connection_id: str) -> PresenceSession | None:
        return self._sessions.get(connection_id)

    def bind_room(self, session: PresenceSession, room_id: str, nickname: str) -> None:
        """把会话绑定到房间。

        已绑定同一房间时为幂等操作（昵称保持首次绑定时的值）。

        Raises:
            AlreadyInRoomError: 会话已绑定到其他房间。
        """
        if session.is_joined:
            if session.room_id != room_id:
                raise AlreadyInRoomError(session.room_id or "", room_id)
            return
        session.room_id = room_id
        session.nickname = nickname
        session.state = SessionState.JOINED

    def release(self, session: PresenceSession) -> None:
        """房间被销毁后解除会话的房间绑定，连接回到未加入状态。"""
        logger.debug("会话解除房间绑定 | conn=%s | room=%s", session.connection_id, session.room_id)
        session.room_id = None
        session.nickname = session.connection_id
        session.state = SessionState.UNJOINED

    def close(self, connection_id: str) -> PresenceSession | None:
        """丢弃会话并返回它；会话不存在（已关闭）时返回 ``None``。"""
        session = self._sessions.pop(connection_id, None)
        if session is not None:
            session.state = SessionState.TERMINATED
        return session

    def __len__(self) -> int:
        return len(self._sessions)
