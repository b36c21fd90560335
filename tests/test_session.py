from __future__ import annotations

import asyncio

import httpx

from messaging_core.client.models import ChatMessage
from messaging_core.client.rest import MessagingAPIClient
from messaging_core.client.session import MessagingSession
from messaging_core.main import app


class _FakeChannel:
    def __init__(self) -> None:
        self.user_id: str | None = None
        self.emitted: list[dict] = []
        self.closed = False
        self._handlers = []

    def on_new_message(self, handler):
        self._handlers.append(handler)
        return handler

    def connect(self, user_id: str) -> None:
        self.user_id = user_id

    def emit_send_message(self, payload: dict) -> None:
        self.emitted.append(payload)

    def deliver(self, data: dict) -> None:
        message = ChatMessage.model_validate(data)
        for handler in self._handlers:
            handler(message)

    async def close(self) -> None:
        self.closed = True


def _api(user_id: str) -> MessagingAPIClient:
    return MessagingAPIClient(
        user_id,
        base_url="http://testserver/v1",
        transport=httpx.ASGITransport(app=app),
    )


def _session(user_id: str) -> tuple[MessagingSession, _FakeChannel]:
    channel = _FakeChannel()
    return MessagingSession(user_id, api=_api(user_id), channel=channel), channel


def test_stranger_request_is_gated_until_accepted(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    async def scenario() -> None:
        async with _api(bob_id) as bob:
            await bob.send_message(alice_id, "hi alice")

        session, channel = _session(alice_id)
        await session.start()
        assert channel.user_id == alice_id
        assert [user.id for user in session.requests.pending] == [bob_id]
        assert [partner.id for partner in session.conversations()] == []

        await session.accept_request(bob_id)
        assert session.requests.pending == []
        assert [partner.id for partner in session.conversations()] == [bob_id]

        await session.stop()
        assert channel.closed

    asyncio.run(scenario())


def test_send_with_echo_keeps_a_single_message(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    async def scenario() -> None:
        session, channel = _session(alice_id)
        await session.start()
        found = await session.search_users("bo")
        assert [user.id for user in found] == [bob_id]

        await session.open_conversation(found[0])
        sent = await session.send("hi")
        assert [message.id for message in session.messages] == [sent.id]
        assert channel.emitted == [{"id": sent.id, "from": alice_id, "to": bob_id, "text": "hi"}]

        channel.deliver({"id": sent.id, "from": alice_id, "to": bob_id, "text": "hi"})
        await session.wait_idle()
        assert [message.id for message in session.messages] == [sent.id]

        partners = session.conversations()
        assert [partner.id for partner in partners] == [bob_id]
        assert partners[0].username == "bob"
        assert partners[0].is_friend is False

        await session.stop()

    asyncio.run(scenario())


def test_new_message_refreshes_unread_and_requests(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")
    carol_id = make_user("carol")

    async def scenario() -> None:
        async with _api(bob_id) as bob:
            await bob.send_message(alice_id, "one")
            await bob.send_message(alice_id, "two")

        session, channel = _session(alice_id)
        await session.start()
        assert session.unread.counts == {bob_id: 2}

        async with _api(carol_id) as carol:
            message = await carol.send_message(alice_id, "hello")

        channel.deliver({"id": message.id, "from": {"_id": carol_id, "username": "carol"}, "to": alice_id, "text": "hello"})
        await session.wait_idle()

        assert session.unread.counts == {bob_id: 2, carol_id: 1}
        assert session.requests.is_pending(carol_id)
        assert carol_id not in [partner.id for partner in session.conversations()]

        await session.stop()

    asyncio.run(scenario())


def test_first_message_from_stranger_is_gated_immediately(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    async def scenario() -> None:
        session, channel = _session(alice_id)
        await session.start()

        async with _api(bob_id) as bob:
            message = await bob.send_message(alice_id, "hello stranger")

        channel.deliver({"id": message.id, "from": {"_id": bob_id, "username": "bob"}, "to": alice_id, "text": "hello stranger"})
        assert session.requests.is_pending(bob_id)
        assert bob_id not in [partner.id for partner in session.conversations()]

        await session.wait_idle()
        assert session.requests.is_pending(bob_id)
        assert bob_id not in [partner.id for partner in session.conversations()]

        await session.stop()

    asyncio.run(scenario())


def test_message_for_open_conversation_is_marked_read(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    async def scenario() -> None:
        session, channel = _session(alice_id)
        await session.start()
        await session.open_conversation(bob_id)

        async with _api(bob_id) as bob:
            message = await bob.send_message(alice_id, "are you there")

        channel.deliver({"id": message.id, "from": bob_id, "to": alice_id, "text": "are you there"})
        await session.wait_idle()

        assert [item.id for item in session.messages] == [message.id]
        assert session.unread.count_for(bob_id) == 0

        await session.stop()

    asyncio.run(scenario())


def test_edit_delete_react_and_decline(make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")

    async def scenario() -> None:
        async with _api(bob_id) as bob:
            await bob.send_message(alice_id, "can we talk")

        session, _ = _session(alice_id)
        await session.start()
        await session.open_conversation(bob_id)
        first = await session.send("sure")
        second = await session.send("what's up")

        await session.edit(first.id, "sure thing")
        await session.react(first.id, "👍")
        await session.delete(second.id)

        texts = [message.text for message in session.messages]
        assert texts == ["can we talk", "sure thing"]
        assert session.messages[1].edited is True
        assert [(reaction.emoji, reaction.by) for reaction in session.messages[1].reactions] == [("👍", alice_id)]

        assert await session.search_users("   ") == []

        await session.decline_request(bob_id)
        assert session.store.partner_id is None
        assert session.messages == []

        await session.stop()

    asyncio.run(scenario())
