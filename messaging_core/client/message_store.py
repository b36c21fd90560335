from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from messaging_core.client.errors import MessagingError
from messaging_core.client.models import LOCAL_ID_PREFIX, ChatMessage

logger = logging.getLogger(__name__)


class MessageAPI(Protocol):
    async def get_messages(self, partner_id: str) -> list[ChatMessage]: ...

    async def send_message(self, partner_id: str, text: str) -> ChatMessage: ...

    async def edit_message(self, message_id: str, text: str) -> ChatMessage: ...

    async def delete_message(self, message_id: str) -> None: ...

    async def react_to_message(self, message_id: str, emoji: str) -> ChatMessage: ...


def _dedupe(messages: list[ChatMessage]) -> list[ChatMessage]:
    seen: set[str] = set()
    unique: list[ChatMessage] = []
    for message in messages:
        if message.id is not None:
            if message.id in seen:
                continue
            seen.add(message.id)
        unique.append(message)
    return unique


class MessageStore:
    """Message sequence of the open conversation.

    The store is the only writer of ``messages``. Server history is
    authoritative: every mutation ends with a re-fetch of the open
    conversation.
    """

    def __init__(self, api: MessageAPI) -> None:
        self._api = api
        self.partner_id: str | None = None
        self.messages: list[ChatMessage] = []
        self._issued = 0
        self._applied = 0

    def select(self, partner_id: str) -> None:
        if partner_id != self.partner_id:
            logger.debug("Conversation opened partner_id=%s", partner_id)
            self.messages = []
        self.partner_id = partner_id

    def close(self) -> None:
        self.partner_id = None
        self.messages = []

    def _index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    async def load_history(self, partner_id: str) -> bool:
        """Replace the sequence with server history. Returns False when the result was stale."""
        self._issued += 1
        generation = self._issued
        history = await self._api.get_messages(partner_id)
        if partner_id != self.partner_id:
            logger.debug(
                "Discarding stale history partner_id=%s open_partner_id=%s",
                partner_id,
                self.partner_id,
            )
            return False
        if generation < self._applied:
            logger.debug(
                "Discarding out-of-order history partner_id=%s generation=%s applied=%s",
                partner_id,
                generation,
                self._applied,
            )
            return False
        self._applied = generation
        self.messages = _dedupe(history)
        return True

    async def refresh(self) -> None:
        if self.partner_id is None:
            return
        try:
            await self.load_history(self.partner_id)
        except MessagingError as exc:
            logger.warning("History refresh failed partner_id=%s error=%s", self.partner_id, exc)

    def append_optimistic(self, text: str, from_id: str) -> ChatMessage:
        if self.partner_id is None:
            raise ValueError("No conversation is open")
        message = ChatMessage(
            id=f"{LOCAL_ID_PREFIX}{uuid4()}",
            from_id=from_id,
            to_id=self.partner_id,
            text=text,
            created_at=datetime.now(UTC),
            status="pending",
        )
        self.messages.append(message)
        return message

    def _confirm(self, local_id: str, confirmed: ChatMessage) -> None:
        index = self._index_of(local_id)
        if index is None:
            # Conversation switched or history reloaded while the send was in flight.
            return
        if confirmed.id is not None and self._index_of(confirmed.id) is not None:
            del self.messages[index]
            return
        self.messages[index] = confirmed.model_copy(update={"status": "sent"})

    def _mark_failed(self, local_id: str) -> None:
        index = self._index_of(local_id)
        if index is not None:
            self.messages[index] = self.messages[index].model_copy(update={"status": "failed"})

    async def send(self, text: str, from_id: str) -> ChatMessage:
        partner_id = self.partner_id
        if partner_id is None:
            raise ValueError("No conversation is open")
        optimistic = self.append_optimistic(text, from_id)
        try:
            confirmed = await self._api.send_message(partner_id, text)
        except MessagingError:
            logger.warning("Send failed partner_id=%s local_id=%s", partner_id, optimistic.id)
            self._mark_failed(optimistic.id)
            raise
        self._confirm(optimistic.id, confirmed)
        logger.info("Message sent message_id=%s partner_id=%s", confirmed.id, partner_id)
        await self.refresh()
        return confirmed

    def reconcile_incoming(self, message: ChatMessage) -> bool:
        if self.partner_id is None or not message.involves(self.partner_id):
            return False
        if message.id is not None and self._index_of(message.id) is not None:
            return False
        self.messages.append(message)
        return True

    async def apply_edit(self, message_id: str, text: str) -> ChatMessage:
        updated = await self._api.edit_message(message_id, text)
        await self.refresh()
        return updated

    async def apply_delete(self, message_id: str) -> None:
        await self._api.delete_message(message_id)
        await self.refresh()

    async def apply_reaction(self, message_id: str, emoji: str) -> ChatMessage:
        updated = await self._api.react_to_message(message_id, emoji)
        await self.refresh()
        return updated
