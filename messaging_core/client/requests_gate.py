from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

from messaging_core.client.errors import APIRequestError, MessagingError
from messaging_core.client.models import UserProfile

logger = logging.getLogger(__name__)

REQUEST_NOT_FOUND = "message_request_not_found"


class RequestAPI(Protocol):
    async def list_message_requests(self) -> list[UserProfile]: ...

    async def accept_message_request(self, sender_id: str) -> None: ...

    async def decline_message_request(self, sender_id: str) -> None: ...


class MessageRequestGate:
    """Pending message requests from non-friends, one entry per sender."""

    def __init__(self, api: RequestAPI) -> None:
        self._api = api
        self._pending: dict[str, UserProfile] = {}

    @property
    def pending(self) -> list[UserProfile]:
        return list(self._pending.values())

    def ids(self) -> set[str]:
        return set(self._pending)

    def is_pending(self, user_id: str) -> bool:
        return user_id in self._pending

    def admit(self, user: UserProfile) -> bool:
        if user.id in self._pending:
            return False
        self._pending[user.id] = user
        logger.debug("Message request admitted sender_id=%s", user.id)
        return True

    async def refresh(self) -> None:
        try:
            senders = await self._api.list_message_requests()
        except MessagingError as exc:
            logger.warning("Message request refresh failed error=%s", exc)
            return
        self._pending = {}
        for sender in senders:
            self._pending.setdefault(sender.id, sender)

    async def _resolve(self, action: str, call: Callable[[str], Awaitable[None]], sender_id: str) -> UserProfile | None:
        try:
            await call(sender_id)
        except APIRequestError as exc:
            if exc.code != REQUEST_NOT_FOUND:
                raise
            # Already resolved elsewhere; the local entry is stale.
            logger.info("Message request already resolved action=%s sender_id=%s", action, sender_id)
        else:
            logger.info("Message request %s sender_id=%s", action, sender_id)
        return self._pending.pop(sender_id, None)

    async def accept(self, sender_id: str) -> UserProfile | None:
        return await self._resolve("accepted", self._api.accept_message_request, sender_id)

    async def decline(self, sender_id: str) -> UserProfile | None:
        return await self._resolve("declined", self._api.decline_message_request, sender_id)
