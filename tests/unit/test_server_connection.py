"""
Unit tests for the orchestration server WebSocket client.
"""

import asyncio
import json

import pytest
import pytest_asyncio

from mastery.exceptions import ConnectionFailedError
from mastery.orchestration import server_connection as server_connection_module
from mastery.orchestration.server_connection import DISCONNECT_EVENT, ServerOrchestrationConnection

_CLOSE = object()


class FakeWebSocket:
    """Minimal client socket: iterate to receive, send() to transmit."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()

    def feed(self, message):
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self):
        self._inbox.put_nowait(_CLOSE)

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Stands in for websockets.connect and records each dialled URL."""

    def __init__(self, failures=0):
        self.failures = failures
        self.urls = []
        self.sockets = []

    async def __call__(self, url):
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


@pytest.fixture
def connector():
    return FakeConnector()


@pytest_asyncio.fixture
async def connection(connector):
    conn = ServerOrchestrationConnection(
        "s1", "ws://tutor.test/orchestrate", connect_timeout=1.0, connect_fn=connector
    )
    yield conn
    await conn.disconnect()


async def _wait(event):
    await asyncio.wait_for(event.wait(), timeout=1.0)


class TestConnect:
    """Tests for the connect handshake."""

    @pytest.mark.asyncio
    async def test_connect_sends_init(self, connection, connector, cookie_card):
        await connection.connect("Maya", cookie_card)

        assert connection.is_connected
        assert connector.urls == ["ws://tutor.test/orchestrate?sessionId=s1"]
        init = connector.sockets[0].sent[0]
        assert init["type"] == "init"
        assert init["studentName"] == "Maya"
        assert init["currentCard"]["id"] == "card-1-cookies"

    @pytest.mark.asyncio
    async def test_refused_connection(self, cookie_card):
        conn = ServerOrchestrationConnection("s1", connect_fn=FakeConnector(failures=1))

        with pytest.raises(ConnectionFailedError):
            await conn.connect("Maya", cookie_card)
        assert conn.is_connected is False

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, cookie_card):
        async def hang(url):
            await asyncio.Event().wait()

        conn = ServerOrchestrationConnection("s1", connect_timeout=0.05, connect_fn=hang)

        with pytest.raises(ConnectionFailedError, match="Timed out"):
            await conn.connect("Maya", cookie_card)


class TestInbound:
    """Tests for message dispatch."""

    @pytest.mark.asyncio
    async def test_handlers_receive_messages(self, connection, connector, cookie_card):
        received = []
        done = asyncio.Event()

        async def on_evaluation(message):
            received.append(message)
            done.set()

        connection.on("evaluation", on_evaluation)
        await connection.connect("Maya", cookie_card)

        ws = connector.sockets[0]
        ws.feed("{not json")
        ws.feed("[1, 2]")
        ws.feed({"type": "evaluation", "evaluation": {"ready": False}})
        await _wait(done)

        assert received == [{"type": "evaluation", "evaluation": {"ready": False}}]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_loop(self, connection, connector, cookie_card):
        done = asyncio.Event()

        def broken(message):
            raise RuntimeError("boom")

        connection.on("error", broken)
        connection.on("advance_card", lambda message: done.set())
        await connection.connect("Maya", cookie_card)

        ws = connector.sockets[0]
        ws.feed({"type": "error", "error": "bad"})
        ws.feed({"type": "advance_card", "points": 30})
        await _wait(done)

        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_off_removes_handler(self, connection, connector, cookie_card):
        seen = []
        done = asyncio.Event()
        handler = seen.append

        connection.on("evaluation", handler)
        connection.off("evaluation", handler)
        connection.on("advance_card", lambda message: done.set())
        await connection.connect("Maya", cookie_card)

        ws = connector.sockets[0]
        ws.feed({"type": "evaluation", "evaluation": {}})
        ws.feed({"type": "advance_card"})
        await _wait(done)

        assert seen == []

    @pytest.mark.asyncio
    async def test_unexpected_close_fires_disconnect(self, connection, connector, cookie_card):
        events = []
        done = asyncio.Event()

        def on_disconnect(message):
            events.append(message["type"])
            done.set()

        connection.on(DISCONNECT_EVENT, on_disconnect)
        await connection.connect("Maya", cookie_card)

        connector.sockets[0].drop()
        await _wait(done)

        assert events == ["disconnect"]
        assert connection.is_connected is False

    @pytest.mark.asyncio
    async def test_explicit_disconnect_is_silent(self, connector, cookie_card):
        conn = ServerOrchestrationConnection("s1", connect_fn=connector)
        events = []
        conn.on(DISCONNECT_EVENT, events.append)
        await conn.connect("Maya", cookie_card)

        await conn.disconnect()

        assert connector.sockets[0].closed
        assert events == []
        assert conn.is_connected is False


class TestOutbound:
    """Tests for outbound messages."""

    @pytest.mark.asyncio
    async def test_send_while_disconnected(self, connection, make_entry):
        assert await connection.send_transcript(make_entry("student", "hi")) is False

    @pytest.mark.asyncio
    async def test_message_shapes(self, connection, connector, cookie_card, brownie_card, make_entry):
        await connection.connect("Maya", cookie_card)

        assert await connection.send_transcript(make_entry("student", "two halves")) is True
        assert await connection.update_card(brownie_card) is True
        assert await connection.force_evaluation() is True

        sent = connector.sockets[0].sent[1:]
        assert sent[0]["type"] == "transcript"
        assert sent[0]["entry"]["text"] == "two halves"
        assert sent[0]["entry"]["isFinal"] is True
        assert sent[1]["type"] == "card_change"
        assert sent[1]["card"]["id"] == "card-4-brownie-halves"
        assert sent[2] == {"type": "force_evaluation"}


class TestReconnect:
    """Tests for backoff reconnection."""

    @pytest.fixture
    def sleeps(self, monkeypatch):
        recorded = []

        async def fake_sleep(seconds):
            recorded.append(seconds)

        monkeypatch.setattr(server_connection_module.asyncio, "sleep", fake_sleep)
        return recorded

    @pytest.mark.asyncio
    async def test_backoff_until_success(self, sleeps, cookie_card):
        connector = FakeConnector(failures=2)
        conn = ServerOrchestrationConnection("s1", reconnect_delay=1.0, connect_fn=connector)

        await conn.reconnect("Maya", cookie_card)

        assert sleeps == [1.0, 2.0, 4.0]
        assert conn.is_connected
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, sleeps, cookie_card):
        connector = FakeConnector(failures=10)
        conn = ServerOrchestrationConnection(
            "s1", max_reconnect_attempts=3, reconnect_delay=0.5, connect_fn=connector
        )

        with pytest.raises(ConnectionFailedError, match="after 3 attempts"):
            await conn.reconnect("Maya", cookie_card)

        assert sleeps == [0.5, 1.0, 2.0]
        assert len(connector.urls) == 3
