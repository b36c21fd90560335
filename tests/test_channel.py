from __future__ import annotations

import asyncio
import json

from messaging_core.client.channel import RealtimeChannel
from messaging_core.core.settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "ws_url": "ws://testserver/v1/ws",
        "ws_reconnect_delay_sec": 0.01,
        "ws_reconnect_max_delay_sec": 0.02,
        "ws_reconnect_attempts": 3,
    }
    values.update(overrides)
    return Settings(**values)


class _FakeConnection:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self.fail_sends = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(text))

    def push(self, frame: dict | str) -> None:
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class _FakeConnector:
    def __init__(self, *, failures: int = 0) -> None:
        self.failures = failures
        self.attempts = 0
        self.connections: list[_FakeConnection] = []

    async def __call__(self, url: str) -> _FakeConnection:
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError(f"cannot reach {url}")
        connection = _FakeConnection()
        self.connections.append(connection)
        return connection


async def _until(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def test_login_is_sent_first_and_new_messages_dispatch_in_order():
    connector = _FakeConnector()
    channel = RealtimeChannel(settings=_settings(), connect=connector)
    received = []
    channel.on_new_message(received.append)

    async def scenario() -> None:
        channel.connect("A")
        assert await channel.wait_connected(timeout=1)
        assert channel.state == "connected"
        connection = connector.connections[0]
        assert connection.sent == [{"event": "login", "data": "A"}]

        connection.push({"event": "ready", "data": {"user_id": "A"}})
        connection.push({"event": "newMessage", "data": {"id": "m1", "from": {"_id": "B"}, "to": "A", "text": "one"}})
        connection.push("{broken json")
        connection.push({"event": "newMessage", "data": {"text": "no parties"}})
        connection.push({"event": "newMessage", "data": {"id": None, "from": "B", "to": "A", "text": "two"}})
        await _until(lambda: len(received) == 2)
        await channel.close()

    asyncio.run(scenario())

    assert [message.text for message in received] == ["one", "two"]
    assert received[0].from_id == "B"
    assert received[1].id is None


def test_reconnect_logs_in_again():
    connector = _FakeConnector()
    channel = RealtimeChannel(settings=_settings(), connect=connector)

    async def scenario() -> None:
        channel.connect("A")
        assert await channel.wait_connected(timeout=1)
        connector.connections[0].drop()
        await _until(lambda: len(connector.connections) == 2 and channel.state == "connected")
        assert connector.connections[1].sent == [{"event": "login", "data": "A"}]
        await channel.close()

    asyncio.run(scenario())


def test_connect_retries_with_backoff_then_succeeds():
    connector = _FakeConnector(failures=2)
    channel = RealtimeChannel(settings=_settings(), connect=connector)

    async def scenario() -> None:
        channel.connect("A")
        assert await channel.wait_connected(timeout=1)
        await channel.close()

    asyncio.run(scenario())

    assert connector.attempts == 3


def test_connect_gives_up_after_max_attempts():
    connector = _FakeConnector(failures=10)
    channel = RealtimeChannel(settings=_settings(), connect=connector)

    async def scenario() -> None:
        channel.connect("A")
        assert await channel.wait_connected(timeout=0.2) is False
        assert channel.state == "disconnected"
        await channel.close()

    asyncio.run(scenario())

    assert connector.attempts == 3


def test_backoff_is_exponential_and_capped():
    channel = RealtimeChannel(
        settings=_settings(ws_reconnect_delay_sec=0.8, ws_reconnect_max_delay_sec=10.0),
        connect=_FakeConnector(),
    )

    assert [channel._backoff(failures) for failures in (1, 2, 3, 4, 5, 6)] == [0.8, 1.6, 3.2, 6.4, 10.0, 10.0]


def test_emit_send_message_is_fire_and_forget():
    connector = _FakeConnector()
    channel = RealtimeChannel(settings=_settings(), connect=connector)
    payload = {"id": "m1", "from": "A", "to": "B", "text": "hi"}

    async def scenario() -> None:
        assert channel.emit_send_message(payload) is None

        channel.connect("A")
        assert await channel.wait_connected(timeout=1)
        connection = connector.connections[0]

        task = channel.emit_send_message(payload)
        assert task is not None
        await task
        assert connection.sent[-1] == {"event": "sendMessage", "data": payload}

        connection.fail_sends = True
        failing = channel.emit_send_message(payload)
        await failing
        assert failing.exception() is None
        await channel.close()

    asyncio.run(scenario())


def test_close_stops_reconnecting():
    connector = _FakeConnector()
    channel = RealtimeChannel(settings=_settings(), connect=connector)

    async def scenario() -> None:
        channel.connect("A")
        assert await channel.wait_connected(timeout=1)
        await channel.close()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert channel.state == "closed"
    assert connector.connections[0].closed is True
    assert len(connector.connections) == 1
