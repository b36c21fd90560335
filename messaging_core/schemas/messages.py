from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from messaging_core.core.settings import get_settings


class MessageTextRequest(BaseModel):
    text: str = Field(min_length=1)

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Text required")
        if len(trimmed) > get_settings().message_max_length:
            raise ValueError("Text is too long")
        return trimmed


class SendMessageRequest(MessageTextRequest):
    pass


class EditMessageRequest(MessageTextRequest):
    pass


class ReactRequest(BaseModel):
    emoji: str = Field(min_length=1, max_length=32)
