from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Literal

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from messaging_core.client.models import ChatMessage
from messaging_core.core.settings import Settings, get_settings
from messaging_core.realtime.protocol import ERROR, LOGIN, NEW_MESSAGE, SEND_MESSAGE

logger = logging.getLogger(__name__)

ChannelState = Literal["disconnected", "connecting", "connected", "closed"]
MessageHandler = Callable[[ChatMessage], None]
Connector = Callable[[str], Awaitable[Any]]


class RealtimeChannel:
    """Socket link to the realtime server.

    One background task owns the connection: it logs in after every
    successful connect, reads frames until the socket drops, then reconnects
    with exponential backoff. Handlers run on that task in arrival order.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        settings: Settings | None = None,
        connect: Connector | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.url = url or settings.ws_url
        self.state: ChannelState = "disconnected"
        self.user_id: str | None = None
        self._connect = connect or websockets.connect
        self._base_delay = settings.ws_reconnect_delay_sec
        self._max_delay = settings.ws_reconnect_max_delay_sec
        self._max_attempts = settings.ws_reconnect_attempts
        self._handlers: list[MessageHandler] = []
        self._ws: Any = None
        self._run_task: asyncio.Task[None] | None = None
        self._emit_tasks: set[asyncio.Task[None]] = set()
        self._send_lock = asyncio.Lock()
        self._connected = asyncio.Event()

    def on_new_message(self, handler: MessageHandler) -> MessageHandler:
        self._handlers.append(handler)
        return handler

    def connect(self, user_id: str) -> None:
        if self.state == "closed":
            raise RuntimeError("Channel is closed")
        self.user_id = user_id
        if self._run_task is not None and not self._run_task.done():
            return
        self._run_task = asyncio.create_task(self._run(), name=f"realtime-channel-{user_id}")

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def _backoff(self, failures: int) -> float:
        return min(self._base_delay * (2 ** max(failures - 1, 0)), self._max_delay)

    async def _run(self) -> None:
        failures = 0
        while self.state != "closed":
            self.state = "connecting"
            try:
                ws = await self._connect(self.url)
            except (OSError, WebSocketException) as exc:
                failures += 1
                if failures >= self._max_attempts:
                    logger.error("Realtime connect giving up url=%s attempts=%s error=%s", self.url, failures, exc)
                    self.state = "disconnected"
                    return
                delay = self._backoff(failures)
                logger.warning("Realtime connect failed url=%s attempt=%s retry_in=%.1fs error=%s", self.url, failures, delay, exc)
                self.state = "disconnected"
                await asyncio.sleep(delay)
                continue

            failures = 0
            self._ws = ws
            try:
                await self._send_frame(LOGIN, self.user_id)
                self.state = "connected"
                self._connected.set()
                logger.info("Realtime connected url=%s user_id=%s", self.url, self.user_id)
                async for raw in ws:
                    self._dispatch(raw)
            except ConnectionClosed as exc:
                logger.info("Realtime connection closed user_id=%s code=%s", self.user_id, exc.rcvd.code if exc.rcvd else None)
            except OSError as exc:
                logger.warning("Realtime connection error user_id=%s error=%s", self.user_id, exc)
            finally:
                self._ws = None
                self._connected.clear()
                if self.state != "closed":
                    self.state = "disconnected"

            if self.state != "closed":
                await asyncio.sleep(self._base_delay)

    def _dispatch(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Dropping non-JSON frame")
            return
        if not isinstance(frame, dict):
            return

        event = frame.get("event")
        if event == ERROR:
            logger.warning("Realtime server error data=%s", frame.get("data"))
            return
        if event != NEW_MESSAGE:
            return

        try:
            message = ChatMessage.model_validate(frame.get("data"))
        except ValidationError as exc:
            logger.warning("Dropping malformed newMessage error=%s", exc.errors()[0]["msg"])
            return
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("newMessage handler failed message_id=%s", message.id)

    async def _send_frame(self, event: str, data: object) -> None:
        ws = self._ws
        if ws is None:
            raise ConnectionError("Realtime channel is not connected")
        async with self._send_lock:
            await ws.send(json.dumps({"event": event, "data": data}))

    def emit_send_message(self, payload: dict[str, object]) -> asyncio.Task[None] | None:
        """Relay a sent message to the server. Never raises; delivery is best-effort."""
        if self.state != "connected":
            logger.info("Dropping sendMessage while %s to=%s", self.state, payload.get("to"))
            return None
        task = asyncio.create_task(self._emit(payload))
        self._emit_tasks.add(task)
        task.add_done_callback(self._emit_tasks.discard)
        return task

    async def _emit(self, payload: dict[str, object]) -> None:
        try:
            await self._send_frame(SEND_MESSAGE, payload)
        except (OSError, WebSocketException) as exc:
            logger.warning("sendMessage emit failed to=%s error=%s", payload.get("to"), exc)

    async def close(self) -> None:
        self.state = "closed"
        self._connected.clear()
        tasks = [*self._emit_tasks]
        if self._run_task is not None:
            tasks.append(self._run_task)
        for task in tasks:
            task.cancel()
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as exc:
                logger.debug("Ignoring error while closing socket error=%s", exc)
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Realtime channel closed user_id=%s", self.user_id)
