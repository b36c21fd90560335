from __future__ import annotations

import logging
from typing import Protocol

from messaging_core.client.errors import MessagingError

logger = logging.getLogger(__name__)


class UnreadAPI(Protocol):
    async def get_unread_counts(self) -> dict[str, int]: ...


class UnreadTracker:
    """Per-sender unread counts, re-fetched wholesale on every refresh."""

    def __init__(self, api: UnreadAPI) -> None:
        self._api = api
        self._counts: dict[str, int] = {}
        self._issued = 0
        self._applied = 0

    @property
    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    def count_for(self, user_id: str) -> int:
        return self._counts.get(user_id, 0)

    async def refresh(self) -> bool:
        """Fetch the map. Returns True when this response was applied."""
        self._issued += 1
        generation = self._issued
        try:
            counts = await self._api.get_unread_counts()
        except MessagingError as exc:
            logger.warning("Unread refresh failed generation=%s error=%s", generation, exc)
            return False
        if generation < self._applied:
            logger.debug("Discarding out-of-order unread counts generation=%s applied=%s", generation, self._applied)
            return False
        self._applied = generation
        self._counts = {user_id: max(count, 0) for user_id, count in counts.items()}
        return True
