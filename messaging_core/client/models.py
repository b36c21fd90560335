from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Literal, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from messaging_core.client.identity import as_id, same_id

LOCAL_ID_PREFIX = "local-"

DeliveryStatus = Literal["pending", "sent", "failed"]


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _loose_datetime(value: object) -> object:
    # Bare calendar dates are read as midnight UTC.
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            day = date.fromisoformat(value.strip())
        except ValueError:
            return value
        return datetime(day.year, day.month, day.day, tzinfo=UTC)
    return value


def _required_id(value: object) -> str:
    normalized = as_id(value)
    if normalized is None:
        raise ValueError("a user or message id is required")
    return normalized


class UserProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    username: str = ""
    full_name: str | None = Field(default=None, validation_alias=AliasChoices("full_name", "fullName"))
    profile_image: str | None = Field(default=None, validation_alias=AliasChoices("profile_image", "profileImage"))
    online: bool = False
    last_message_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("last_message_at", "lastMessageAt"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: object) -> str:
        return _required_id(value)

    @field_validator("username", mode="before")
    @classmethod
    def default_username(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("last_message_at", mode="before")
    @classmethod
    def parse_last_message_at(cls, value: object) -> object:
        return _loose_datetime(value)

    @field_validator("last_message_at")
    @classmethod
    def normalize_last_message_at(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value)


class Reaction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    emoji: str
    by: str = Field(validation_alias=AliasChoices("by", "user", "user_id"))

    @field_validator("by", mode="before")
    @classmethod
    def normalize_by(cls, value: object) -> str:
        return _required_id(value)


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    from_id: str = Field(validation_alias=AliasChoices("from_id", "from"))
    to_id: str = Field(validation_alias=AliasChoices("to_id", "to"))
    sender: UserProfile | None = None
    text: str = ""
    created_at: datetime | None = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))
    edited: bool = False
    reactions: list[Reaction] = Field(default_factory=list)
    status: DeliveryStatus = "sent"

    @model_validator(mode="before")
    @classmethod
    def capture_embedded_sender(cls, data: object) -> object:
        if isinstance(data, Mapping) and "sender" not in data:
            embedded = data.get("from")
            if isinstance(embedded, Mapping) and as_id(embedded) is not None:
                return {**data, "sender": embedded}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: object) -> str | None:
        return as_id(value)

    @field_validator("from_id", "to_id", mode="before")
    @classmethod
    def normalize_party(cls, value: object) -> str:
        return _required_id(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: object) -> object:
        return _loose_datetime(value)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value)

    @property
    def is_local(self) -> bool:
        return self.id is not None and self.id.startswith(LOCAL_ID_PREFIX)

    def involves(self, user_id: str) -> bool:
        return same_id(self.from_id, user_id) or same_id(self.to_id, user_id)

    def relay_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"from": self.from_id, "to": self.to_id, "text": self.text}
        if self.id is not None and not self.is_local:
            payload["id"] = self.id
        return payload


class ConversationPartner(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str = ""
    full_name: str | None = None
    profile_image: str | None = None
    online: bool = False
    is_friend: bool = False
    last_message_at: datetime | None = None
    unread_count: int = Field(default=0, ge=0)

    @classmethod
    def from_profile(cls, profile: UserProfile, *, is_friend: bool, unread_count: int = 0) -> ConversationPartner:
        return cls(
            id=profile.id,
            username=profile.username,
            full_name=profile.full_name,
            profile_image=profile.profile_image,
            online=profile.online,
            is_friend=is_friend,
            last_message_at=profile.last_message_at,
            unread_count=max(unread_count, 0),
        )
