"""
evacuate.services.connection_hub
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接中心 —— 连接标识 → WebSocket 的发送通道。

每个连接一个有序发件箱（``asyncio.Queue``）和一个写协程，
``send()`` 只负责入队，不等待网络发送完成；同一连接上的消息
严格按入队顺序送达。
"""
from __future__ import annotations

import asyncio

from fastapi import WebSocket

from evacuate.core.logging import get_logger
from evacuate.schemas.location_events import Envelope

logger = get_logger(__name__)

_OUTBOX_MAXSIZE: int = 256


class Outbox:
    """单个连接的发件箱。"""

    def __init__(self, connection_id: str, websocket: WebSocket) -> None:
        self.connection_id = connection_id
        self.websocket = websocket
        self.closed = False
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=_OUTBOX_MAXSIZE)
        self._writer: asyncio.Task[None] = asyncio.create_task(self._write_loop())
        self._closer: asyncio.Task[None] | None = None

    def put(self, text: str) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            # 队列满即断开连接，断开处理由接收循环完成
            logger.warning("发件箱已满，断开连接 | conn=%s", self.connection_id)
            self.closed = True
            self._writer.cancel()
            self._closer = asyncio.create_task(self._close_socket())

    async def _close_socket(self) -> None:
        try:
            await self.websocket.close(code=1013)
        except Exception as e:
            logger.debug("关闭连接失败 | conn=%s | %s", self.connection_id, e)

    async def _write_loop(self) -> None:
        while True:
            text = await self._queue.get()
            if text is None:
                break
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.warning("发送失败，关闭发件箱 | conn=%s | %s", self.connection_id, e)
                self.closed = True
                break

    async def close(self) -> None:
        """停止接收新消息，发完已入队的消息后结束写协程。"""
        if not self.closed:
            self.closed = True
            try:
                self._queue.put_nowait(None)
            except asyncio.QueueFull:
                self._writer.cancel()
        tasks = [self._writer] if self._closer is None else [self._writer, self._closer]
        await asyncio.gather(*tasks, return_exceptions=True)


class ConnectionHub:
    """进程内所有在线连接的发送通道。"""

    def __init__(self) -> None:
        self._outboxes: dict[str, Outbox] = {}

    def register(self, connection_id: str, websocket: WebSocket) -> Outbox:
        """登记一个已 accept 的连接。必须在事件循环中调用。"""
        outbox = Outbox(connection_id, websocket)
        self._outboxes[connection_id] = outbox
        logger.info("连接已登记 | conn=%s | 在线: %d", connection_id, self.online_count)
        return outbox

    def detach(self, connection_id: str) -> Outbox | None:
        """移除连接，之后发给它的消息都会被丢弃。"""
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            logger.info("连接已移除 | conn=%s | 在线: %d", connection_id, self.online_count)
        return outbox

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def send(self, connection_id: str, event: str, data: dict) -> None:
        """向指定连接投递一个事件（fire-and-forget）。"""
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug("目标连接不在线，忽略 | conn=%s | event=%s", connection_id, event)
            return
        outbox.put(Envelope(event=event, data=data).model_dump_json())

    @property
    def online_count(self) -> int:
        return len(self._outboxes)
