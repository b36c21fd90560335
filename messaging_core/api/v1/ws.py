from __future__ import annotations

import asyncio
from collections import deque
import logging
from time import monotonic

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

import messaging_core.db.session as db_session
from messaging_core.core.settings import get_settings
from messaging_core.models import User
from messaging_core.realtime.connection_manager import ConnectionContext, ConnectionManager
from messaging_core.realtime.protocol import (
    LoginFrame,
    ProtocolError,
    SendMessageFrame,
    error_frame,
    new_message_frame,
    parse_frame,
    ready_frame,
    relay_payload,
)
from messaging_core.services import message_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["ws"])


def _frame_allowed(events: deque[float], *, now: float, window_seconds: int, max_frames: int) -> bool:
    cutoff = now - window_seconds
    while events and events[0] <= cutoff:
        events.popleft()
    if len(events) >= max_frames:
        return False
    events.append(now)
    return True


def _user_exists(user_id: str) -> bool:
    with db_session.session_scope() as db:
        return db.get(User, user_id) is not None


def _set_online(user_id: str, online: bool) -> None:
    with db_session.session_scope() as db:
        user_service.set_online(db, user_id, online)


def _relay_body(frame: SendMessageFrame) -> dict[str, object]:
    payload = frame.data
    if payload.id:
        with db_session.session_scope() as db:
            stored = message_service.find_relayable_message(db, message_id=payload.id, sender_id=payload.from_id)
        if stored is not None:
            return stored
        logger.debug("Relay id did not resolve to a stored message id=%s", payload.id)
    return relay_payload(payload)


async def _handle_login(manager: ConnectionManager, context: ConnectionContext, frame: LoginFrame) -> None:
    user_id = frame.data.strip()
    if not _user_exists(user_id):
        logger.warning("Login for unknown user connection_id=%s user_id=%s", context.connection_id, user_id)
        await manager.send(context.connection_id, error_frame(code="UNKNOWN_USER", message="Unknown user"))
        return

    await manager.bind_user(context.connection_id, user_id)
    _set_online(user_id, True)
    await manager.send(context.connection_id, ready_frame(connection_id=context.connection_id, user_id=user_id))


async def _handle_send_message(manager: ConnectionManager, context: ConnectionContext, frame: SendMessageFrame) -> None:
    if context.user_id is None:
        await manager.send(context.connection_id, error_frame(code="NOT_LOGGED_IN", message="Login required"))
        return
    if frame.data.from_id != context.user_id:
        logger.warning(
            "sendMessage sender mismatch connection_id=%s bound=%s claimed=%s",
            context.connection_id,
            context.user_id,
            frame.data.from_id,
        )
        await manager.send(
            context.connection_id,
            error_frame(code="FORBIDDEN_SENDER", message="Cannot send as another user"),
        )
        return

    outgoing = new_message_frame(_relay_body(frame))
    delivered = await manager.send_to_user(frame.data.to_id, outgoing)
    delivered += await manager.send_to_user(
        context.user_id,
        outgoing,
        exclude_connection_id=context.connection_id,
    )
    logger.debug(
        "Relayed newMessage from=%s to=%s delivered=%s",
        frame.data.from_id,
        frame.data.to_id,
        delivered,
    )


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    settings = get_settings()
    connection_manager: ConnectionManager | None = getattr(websocket.app.state, "connection_manager", None)
    if connection_manager is None:
        await websocket.close(code=1011)
        return

    await websocket.accept()
    context = await connection_manager.register(websocket)

    rate_events: deque[float] = deque()
    try:
        while True:
            try:
                raw_text = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_idle_timeout_sec)
            except asyncio.TimeoutError:
                break
            except WebSocketDisconnect:
                break

            if not _frame_allowed(
                rate_events,
                now=monotonic(),
                window_seconds=settings.ws_rate_limit_window_sec,
                max_frames=settings.ws_rate_limit_max_frames,
            ):
                await connection_manager.send(
                    context.connection_id,
                    error_frame(code="RATE_LIMITED", message="Frame rate limit exceeded"),
                )
                continue

            try:
                frame = parse_frame(raw_text, max_bytes=settings.ws_max_frame_bytes)
            except ProtocolError as exc:
                await connection_manager.send(context.connection_id, error_frame(code=exc.code, message=exc.message))
                continue

            if isinstance(frame, LoginFrame):
                await _handle_login(connection_manager, context, frame)
                continue

            if isinstance(frame, SendMessageFrame):
                await _handle_send_message(connection_manager, context, frame)
                continue
    finally:
        offline_user_id = await connection_manager.unregister(context.connection_id, close_socket=True)
        if offline_user_id is not None:
            _set_online(offline_user_id, False)
        logger.info("WebSocket session closed connection_id=%s user_id=%s", context.connection_id, context.user_id)
