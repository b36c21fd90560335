from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from messaging_core.client.errors import APIRequestError, TransportError
from messaging_core.client.models import ChatMessage, UserProfile
from messaging_core.core.settings import USER_ID_HEADER, Settings, get_settings

logger = logging.getLogger(__name__)

_profiles = TypeAdapter(list[UserProfile])
_message = TypeAdapter(ChatMessage)
_messages = TypeAdapter(list[ChatMessage])
_unread = TypeAdapter(dict[str, int])


def _segment(value: str) -> str:
    return quote(value, safe="")


def _parse(adapter: TypeAdapter[Any], data: object, what: str) -> Any:
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise TransportError(f"Malformed {what} payload: {exc.errors()[0]['msg']}") from exc


class MessagingAPIClient:
    """REST client for the social-graph and persisted-message endpoints.

    Every call is a suspension point. Failures raise ``TransportError`` or
    ``APIRequestError``; callers decide whether a failure degrades or
    propagates.
    """

    def __init__(
        self,
        user_id: str,
        *,
        settings: Settings | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.user_id = user_id
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            headers={USER_ID_HEADER: user_id},
            timeout=settings.http_timeout_sec,
            transport=transport,
        )

    async def __aenter__(self) -> MessagingAPIClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("HTTP request failed method=%s path=%s error=%s", method, path, exc)
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned a non-JSON body (status {response.status_code})") from exc

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            error = error if isinstance(error, dict) else {}
            logger.debug(
                "HTTP request rejected method=%s path=%s status=%s code=%s",
                method,
                path,
                response.status_code,
                error.get("code"),
            )
            raise APIRequestError(
                status_code=response.status_code,
                code=str(error.get("code") or "http_error"),
                message=str(error.get("message") or response.reason_phrase),
                details=error.get("details"),
            )

        if not isinstance(body, dict) or "data" not in body:
            raise TransportError(f"{method} {path} returned an unexpected payload")
        return body["data"]

    async def list_friends(self) -> list[UserProfile]:
        return _parse(_profiles, await self._request("GET", "/social/friends"), "friends")

    async def list_friend_requests(self) -> list[UserProfile]:
        data = await self._request("GET", "/social/friend-requests")
        return _parse(_profiles, data, "friend requests")

    async def list_chat_users(self) -> list[UserProfile]:
        return _parse(_profiles, await self._request("GET", "/messages/chat-users"), "chat users")

    async def list_message_requests(self) -> list[UserProfile]:
        data = await self._request("GET", "/messages/requests")
        return _parse(_profiles, data, "message requests")

    async def accept_message_request(self, sender_id: str) -> None:
        await self._request("POST", f"/messages/requests/{_segment(sender_id)}/accept")

    async def decline_message_request(self, sender_id: str) -> None:
        await self._request("POST", f"/messages/requests/{_segment(sender_id)}/decline")

    async def get_messages(self, partner_id: str) -> list[ChatMessage]:
        data = await self._request("GET", f"/messages/{_segment(partner_id)}")
        return _parse(_messages, data, "history")

    async def send_message(self, partner_id: str, text: str) -> ChatMessage:
        data = await self._request("POST", f"/messages/{_segment(partner_id)}", json={"text": text})
        return _parse(_message, data, "message")

    async def edit_message(self, message_id: str, text: str) -> ChatMessage:
        data = await self._request("PUT", f"/messages/{_segment(message_id)}", json={"text": text})
        return _parse(_message, data, "message")

    async def delete_message(self, message_id: str) -> None:
        await self._request("DELETE", f"/messages/{_segment(message_id)}")

    async def react_to_message(self, message_id: str, emoji: str) -> ChatMessage:
        data = await self._request("PATCH", f"/messages/{_segment(message_id)}/reactions", json={"emoji": emoji})
        return _parse(_message, data, "message")

    async def get_unread_counts(self) -> dict[str, int]:
        return _parse(_unread, await self._request("GET", "/messages/unread/counts"), "unread counts")

    async def search_users(self, query: str) -> list[UserProfile]:
        data = await self._request("GET", "/users/search", params={"query": query})
        users = data.get("users", []) if isinstance(data, dict) else data
        return _parse(_profiles, users, "search results")
