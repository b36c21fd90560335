from __future__ import annotations


class MessagingError(Exception):
    """Base class for failures surfaced by the messaging client."""


class TransportError(MessagingError):
    """The request never produced a usable response (network, timeout, bad JSON)."""


class APIRequestError(MessagingError):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: object | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{status_code} {code}: {message}")
