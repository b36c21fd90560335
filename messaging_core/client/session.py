from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Coroutine

import httpx

from messaging_core.client.aggregator import aggregate_conversations
from messaging_core.client.channel import RealtimeChannel
from messaging_core.client.errors import MessagingError
from messaging_core.client.identity import same_id
from messaging_core.client.message_store import MessageStore
from messaging_core.client.models import ChatMessage, ConversationPartner, UserProfile
from messaging_core.client.requests_gate import MessageRequestGate
from messaging_core.client.rest import MessagingAPIClient
from messaging_core.client.unread import UnreadTracker
from messaging_core.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class MessagingSession:
    """Everything one signed-in user needs to chat.

    The session owns its stores explicitly and wires the realtime channel
    into them. Background refreshes run as tracked tasks and are cancelled
    by ``stop()``.
    """

    def __init__(
        self,
        user_id: str,
        *,
        api: MessagingAPIClient,
        channel: RealtimeChannel,
        store: MessageStore | None = None,
        unread: UnreadTracker | None = None,
        requests: MessageRequestGate | None = None,
    ) -> None:
        self.user_id = user_id
        self.api = api
        self.channel = channel
        self.store = store or MessageStore(api)
        self.unread = unread or UnreadTracker(api)
        self.requests = requests or MessageRequestGate(api)

        self.friends: list[UserProfile] = []
        self.friend_requests: list[UserProfile] = []
        self.outgoing: list[UserProfile] = []
        self.incoming: list[UserProfile] = []
        self.backend_partners: list[UserProfile] = []
        self._directory: dict[str, UserProfile] = {}
        self._tasks: set[asyncio.Task[None]] = set()

        self.channel.on_new_message(self._handle_new_message)

    @classmethod
    def create(
        cls,
        user_id: str,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MessagingSession:
        settings = settings or get_settings()
        return cls(
            user_id,
            api=MessagingAPIClient(user_id, settings=settings, transport=transport),
            channel=RealtimeChannel(settings=settings),
        )

    async def start(self) -> None:
        self.channel.connect(self.user_id)
        await self.refresh_contacts()
        await self.unread.refresh()
        logger.info("Messaging session started user_id=%s", self.user_id)

    async def stop(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.channel.close()
        await self.api.aclose()
        logger.info("Messaging session stopped user_id=%s", self.user_id)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, coro: Coroutine[object, object, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read(self, fetch: Callable[[], Awaitable[list[UserProfile]]], label: str) -> list[UserProfile] | None:
        try:
            return await fetch()
        except MessagingError as exc:
            logger.warning("Contact read failed source=%s error=%s", label, exc)
            return None

    def _remember(self, profiles: list[UserProfile]) -> None:
        for profile in profiles:
            self._directory[profile.id] = profile

    async def refresh_contacts(self) -> None:
        friends, friend_requests, backend, _ = await asyncio.gather(
            self._read(self.api.list_friends, "friends"),
            self._read(self.api.list_friend_requests, "friend_requests"),
            self._read(self.api.list_chat_users, "chat_users"),
            self.requests.refresh(),
        )
        if friends is not None:
            self.friends = friends
        if friend_requests is not None:
            self.friend_requests = friend_requests
        if backend is not None:
            self.backend_partners = backend
        self._remember([*self.friends, *self.backend_partners, *self.requests.pending])

    def is_friend(self, user_id: str) -> bool:
        return any(friend.id == user_id for friend in self.friends)

    def _is_known(self, user_id: str) -> bool:
        return any(
            profile.id == user_id
            for source in (self.friends, self.outgoing, self.incoming, self.backend_partners)
            for profile in source
        )

    def _profile_for(self, user_id: str, hint: UserProfile | None = None) -> UserProfile:
        return hint or self._directory.get(user_id) or UserProfile(id=user_id)

    def conversations(self) -> list[ConversationPartner]:
        return aggregate_conversations(
            self.friends,
            self.outgoing,
            self.incoming,
            self.backend_partners,
            request_ids=self.requests.ids(),
            unread_counts=self.unread.counts,
        )

    @property
    def messages(self) -> list[ChatMessage]:
        return self.store.messages

    async def open_conversation(self, partner: UserProfile | str) -> list[ChatMessage]:
        if isinstance(partner, UserProfile):
            self._remember([partner])
            partner_id = partner.id
        else:
            partner_id = partner
        self.store.select(partner_id)
        await self.store.refresh()
        # Loading history marks inbound messages read on the server.
        self._schedule(self.unread.refresh(), "unread-refresh")
        return self.store.messages

    def close_conversation(self) -> None:
        self.store.close()

    async def send(self, text: str) -> ChatMessage:
        partner_id = self.store.partner_id
        if partner_id is None:
            raise ValueError("No conversation is open")
        message = await self.store.send(text, self.user_id)
        if not self._is_known(partner_id):
            self.outgoing.append(self._profile_for(partner_id))
        self.channel.emit_send_message(message.relay_payload())
        return message

    async def edit(self, message_id: str, text: str) -> ChatMessage:
        return await self.store.apply_edit(message_id, text)

    async def delete(self, message_id: str) -> None:
        await self.store.apply_delete(message_id)

    async def react(self, message_id: str, emoji: str) -> ChatMessage:
        return await self.store.apply_reaction(message_id, emoji)

    async def accept_request(self, sender_id: str) -> UserProfile:
        accepted = await self.requests.accept(sender_id)
        profile = self._profile_for(sender_id, accepted)
        if not self._is_known(sender_id):
            self.incoming.append(profile)
        return profile

    async def decline_request(self, sender_id: str) -> None:
        await self.requests.decline(sender_id)
        if self.store.partner_id == sender_id:
            self.store.close()

    async def search_users(self, query: str) -> list[UserProfile]:
        query = query.strip()
        if not query:
            return []
        results = await self.api.search_users(query)
        self._remember(results)
        return results

    async def _refresh_open_then_unread(self) -> None:
        await self.store.refresh()
        await self.unread.refresh()

    def _handle_new_message(self, message: ChatMessage) -> None:
        outbound = same_id(message.from_id, self.user_id)
        partner_id = message.to_id if outbound else message.from_id
        appended = self.store.reconcile_incoming(message)

        if outbound:
            if not self._is_known(partner_id):
                self.outgoing.append(self._profile_for(partner_id))
        elif not self._is_known(partner_id):
            profile = self._profile_for(partner_id, message.sender)
            # A first message from a stranger is a request until the server says otherwise.
            self.requests.admit(profile)
            self.incoming.append(profile)

        if not outbound and not self.is_friend(partner_id):
            self._schedule(self.requests.refresh(), "requests-refresh")
        if appended and not outbound:
            self._schedule(self._refresh_open_then_unread(), "history-refresh")
        else:
            self._schedule(self.unread.refresh(), "unread-refresh")
