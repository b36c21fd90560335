from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    connection_id: str
    websocket: WebSocket
    outgoing_queue: asyncio.Queue[dict[str, object]]
    writer_task: asyncio.Task[None] | None
    user_id: str | None = None


class ConnectionManager:
    """Live sockets, indexed by the user each one logged in as."""

    def __init__(self, *, outgoing_queue_size: int) -> None:
        self._outgoing_queue_size = outgoing_queue_size
        self._connections: dict[str, ConnectionContext] = {}
        self._connections_by_user: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: WebSocket) -> ConnectionContext:
        connection_id = str(uuid.uuid4())
        queue: asyncio.Queue[dict[str, object]] = asyncio.Queue(maxsize=self._outgoing_queue_size)
        context = ConnectionContext(
            connection_id=connection_id,
            websocket=websocket,
            outgoing_queue=queue,
            writer_task=None,
        )

        async with self._lock:
            self._connections[connection_id] = context
            context.writer_task = asyncio.create_task(self._writer_loop(connection_id))
        logger.info("WebSocket connection registered connection_id=%s", connection_id)
        return context

    async def bind_user(self, connection_id: str, user_id: str) -> None:
        """Route a connection to ``user_id``; a repeated login rebinds it."""
        async with self._lock:
            context = self._connections.get(connection_id)
            if context is None:
                return
            if context.user_id is not None and context.user_id != user_id:
                self._detach_user(context)
            context.user_id = user_id
            self._connections_by_user.setdefault(user_id, set()).add(connection_id)
        logger.info("WebSocket connection bound connection_id=%s user_id=%s", connection_id, user_id)

    def _detach_user(self, context: ConnectionContext) -> None:
        if context.user_id is None:
            return
        user_connections = self._connections_by_user.get(context.user_id)
        if user_connections is not None:
            user_connections.discard(context.connection_id)
            if not user_connections:
                self._connections_by_user.pop(context.user_id, None)

    async def unregister(self, connection_id: str, *, close_socket: bool = True, close_code: int = 1000) -> str | None:
        """Drop a connection; returns its user id when that was the user's last connection."""
        async with self._lock:
            context = self._connections.pop(connection_id, None)
            if context is None:
                return None
            self._detach_user(context)
            went_offline = context.user_id is not None and context.user_id not in self._connections_by_user

        current_task = asyncio.current_task()
        if context.writer_task is not None and context.writer_task is not current_task:
            context.writer_task.cancel()
            try:
                await context.writer_task
            except asyncio.CancelledError:
                pass

        if close_socket:
            try:
                await context.websocket.close(code=close_code)
            except Exception:
                logger.debug("WebSocket already closed connection_id=%s", connection_id)
        logger.info("WebSocket connection unregistered connection_id=%s user_id=%s", connection_id, context.user_id)
        return context.user_id if went_offline else None

    async def _writer_loop(self, connection_id: str) -> None:
        while True:
            async with self._lock:
                context = self._connections.get(connection_id)
            if context is None:
                return

            try:
                payload = await context.outgoing_queue.get()
                await context.websocket.send_json(payload)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "WebSocket writer failed connection_id=%s user_id=%s error=%s",
                    connection_id,
                    context.user_id,
                    exc,
                )
                await self.unregister(connection_id, close_socket=False)
                return

    async def send(self, connection_id: str, payload: dict[str, object]) -> bool:
        async with self._lock:
            context = self._connections.get(connection_id)

        if context is None:
            return False

        try:
            context.outgoing_queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            logger.warning("Slow WebSocket client disconnected connection_id=%s", connection_id)
            await self.unregister(connection_id, close_socket=True, close_code=1013)
            return False

    async def send_to_user(
        self,
        user_id: str,
        payload: dict[str, object],
        *,
        exclude_connection_id: str | None = None,
    ) -> int:
        async with self._lock:
            connection_ids = [
                connection_id
                for connection_id in self._connections_by_user.get(user_id, set())
                if connection_id != exclude_connection_id
            ]

        delivered = 0
        for connection_id in connection_ids:
            if await self.send(connection_id, payload):
                delivered += 1
        return delivered

    async def close_all(self, *, close_code: int = 1001) -> int:
        async with self._lock:
            connection_ids = list(self._connections)
        for connection_id in connection_ids:
            await self.unregister(connection_id, close_socket=True, close_code=close_code)
        return len(connection_ids)
