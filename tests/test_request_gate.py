from __future__ import annotations

import asyncio

import pytest

from messaging_core.client.errors import APIRequestError, TransportError
from messaging_core.client.models import UserProfile
from messaging_core.client.requests_gate import MessageRequestGate


class _FakeRequestAPI:
    def __init__(self, pending: list[UserProfile]) -> None:
        self.pending = list(pending)
        self.list_error: Exception | None = None
        self.resolved: list[tuple[str, str]] = []
        self.resolve_error: Exception | None = None

    async def list_message_requests(self) -> list[UserProfile]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.pending)

    def _resolve(self, action: str, sender_id: str) -> None:
        if self.resolve_error is not None:
            raise self.resolve_error
        if all(user.id != sender_id for user in self.pending):
            raise APIRequestError(status_code=404, code="message_request_not_found", message="Message request not found")
        self.pending = [user for user in self.pending if user.id != sender_id]
        self.resolved.append((action, sender_id))

    async def accept_message_request(self, sender_id: str) -> None:
        self._resolve("accept", sender_id)

    async def decline_message_request(self, sender_id: str) -> None:
        self._resolve("decline", sender_id)


def test_refresh_loads_pending_senders_and_keeps_them_on_failure():
    api = _FakeRequestAPI([UserProfile(id="B", username="bob"), UserProfile(id="C", username="cy")])
    gate = MessageRequestGate(api)

    async def scenario() -> None:
        await gate.refresh()
        api.list_error = TransportError("offline")
        await gate.refresh()

    asyncio.run(scenario())

    assert [user.id for user in gate.pending] == ["B", "C"]
    assert gate.ids() == {"B", "C"}
    assert gate.is_pending("B")
    assert not gate.is_pending("D")


def test_admit_is_idempotent():
    gate = MessageRequestGate(_FakeRequestAPI([]))

    assert gate.admit(UserProfile(id="B", username="bob")) is True
    assert gate.admit(UserProfile(id="B", username="bob again")) is False
    assert [user.username for user in gate.pending] == ["bob"]


def test_accept_and_decline_remove_the_sender():
    api = _FakeRequestAPI([UserProfile(id="B", username="bob"), UserProfile(id="C", username="cy")])
    gate = MessageRequestGate(api)

    async def scenario() -> None:
        await gate.refresh()
        accepted = await gate.accept("B")
        assert accepted is not None and accepted.username == "bob"
        await gate.decline("C")

    asyncio.run(scenario())

    assert gate.pending == []
    assert api.resolved == [("accept", "B"), ("decline", "C")]


def test_failed_accept_keeps_the_request():
    api = _FakeRequestAPI([UserProfile(id="B", username="bob")])
    gate = MessageRequestGate(api)
    gate.admit(UserProfile(id="B", username="bob"))
    api.resolve_error = APIRequestError(status_code=500, code="internal_error", message="Internal server error")

    with pytest.raises(APIRequestError):
        asyncio.run(gate.accept("B"))
    api.resolve_error = TransportError("offline")
    with pytest.raises(TransportError):
        asyncio.run(gate.decline("B"))

    assert gate.is_pending("B")
    assert api.resolved == []


def test_request_resolved_elsewhere_is_dropped():
    api = _FakeRequestAPI([])
    gate = MessageRequestGate(api)
    gate.admit(UserProfile(id="B", username="bob"))
    gate.admit(UserProfile(id="C", username="cy"))

    accepted = asyncio.run(gate.accept("B"))
    asyncio.run(gate.decline("C"))

    assert accepted is not None and accepted.username == "bob"
    assert gate.pending == []
    assert api.resolved == []
