from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: str | None = None
    profile_image: str | None = None
    online: bool = False


class ChatUser(UserPublic):
    last_message_at: datetime | None = None


class UserSearchResult(BaseModel):
    users: list[UserPublic]
