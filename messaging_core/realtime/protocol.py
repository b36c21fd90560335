from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOGIN = "login"
SEND_MESSAGE = "sendMessage"
NEW_MESSAGE = "newMessage"
READY = "ready"
ERROR = "error"


@dataclass(slots=True)
class ProtocolError(Exception):
    code: str
    message: str


class LoginFrame(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: Literal["login"]
    data: str = Field(min_length=1, max_length=64)


class SendMessagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_id: str = Field(alias="from", min_length=1, max_length=64)
    to_id: str = Field(alias="to", min_length=1, max_length=64)
    text: str = Field(min_length=1)
    id: str | None = Field(default=None, max_length=64)


class SendMessageFrame(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: Literal["sendMessage"]
    data: SendMessagePayload


Frame = LoginFrame | SendMessageFrame


def parse_frame(raw_text: str, *, max_bytes: int) -> Frame:
    payload_size = len(raw_text.encode("utf-8"))
    if payload_size > max_bytes:
        raise ProtocolError(code="INVALID_FRAME", message="Frame is too large")

    try:
        decoded = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ProtocolError(code="INVALID_FRAME", message="Invalid JSON payload") from exc

    if not isinstance(decoded, dict):
        raise ProtocolError(code="INVALID_FRAME", message="Frame payload must be an object")

    event = decoded.get("event")
    model: type[BaseModel]
    if event == LOGIN:
        model = LoginFrame
    elif event == SEND_MESSAGE:
        model = SendMessageFrame
    else:
        raise ProtocolError(code="INVALID_FRAME", message="Unsupported event")

    try:
        return model.model_validate(decoded)
    except ValidationError as exc:
        raise ProtocolError(code="INVALID_FRAME", message=str(exc.errors()[0]["msg"])) from exc


def ready_frame(*, connection_id: str, user_id: str) -> dict[str, object]:
    return {
        "event": READY,
        "data": {
            "connection_id": connection_id,
            "user_id": user_id,
            "server_time": datetime.now(UTC).isoformat(),
        },
    }


def error_frame(*, code: str, message: str) -> dict[str, object]:
    return {"event": ERROR, "data": {"code": code, "message": message}}


def new_message_frame(message: dict[str, object]) -> dict[str, object]:
    return {"event": NEW_MESSAGE, "data": message}


def relay_payload(payload: SendMessagePayload) -> dict[str, object]:
    """Relay body for a sendMessage that has no stored record to point at."""
    return {
        "id": None,
        "from": payload.from_id,
        "to": payload.to_id,
        "text": payload.text,
        "created_at": datetime.now(UTC).isoformat(),
        "edited": False,
        "reactions": [],
    }
