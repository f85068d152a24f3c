"""
evacuate.core.rate_limit
~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口与 WebSocket 位置上报的限流配置。
"""
from __future__ import annotations

import time

from slowapi import Limiter
from slowapi.util import get_remote_address

# --------- HTTP 接口限流器 ---------
# 基于客户端 IP 地址进行限流，进程内存储
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)


# --------- WebSocket 位置上报限流器 ---------
class LocationUpdateThrottle:
    """基于内存的位置上报节流器。

    记录每个连接上一次被接受的位置上报时间，间隔不足时拒绝。
    ``interval_seconds`` 为 0 时所有上报都会放行。
    """

    def __init__(self, interval_seconds: float = 0.0) -> None:
        self.interval_seconds = interval_seconds
        self._last_update_time: dict[str, float] = {}

    def is_allowed(self, connection_id: str) -> bool:
        """检查连接是否允许上报位置。

        Args:
            connection_id: 连接唯一标识。

        Returns:
            是否允许。如果允许，则同时更新上次上报时间。
        """
        now = time.monotonic()
        last_time = self._last_update_time.get(connection_id)

        if last_time is None or now - last_time >= self.interval_seconds:
            self._last_update_time[connection_id] = now
            return True
        return False

    def remove_client(self, connection_id: str) -> None:
        """清理断开连接的记录。"""
        self._last_update_time.pop(connection_id, None)
