"""Tests for the live notification dispatcher and WebSocket route."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import USER_GOOGLE_ID
from networking_hub.web.app import create_app
from networking_hub.web.live import NotificationDispatcher, _is_ping


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI):
    yield


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@pytest.fixture
def client(dispatcher: NotificationDispatcher) -> TestClient:
    app = create_app()
    app.router.lifespan_context = _noop_lifespan
    app.state.dispatcher = dispatcher
    return TestClient(app)


class TestDispatcher:
    async def test_emit_reaches_every_connection_of_user(self, dispatcher):
        first, second, other = FakeSocket(), FakeSocket(), FakeSocket()
        await dispatcher.connect("1111111111", first)
        await dispatcher.connect("1111111111", second)
        await dispatcher.connect("2222222222", other)

        reached = await dispatcher.emit("1111111111", "new_emails", {"count": 1})

        assert reached == 2
        assert first.sent == [{"event": "new_emails", "data": {"count": 1}}]
        assert second.sent == first.sent
        assert other.sent == []
        assert dispatcher.connection_count() == 3

    async def test_emit_without_connections(self, dispatcher):
        assert await dispatcher.emit("1111111111", "new_emails", {}) == 0

    async def test_failed_send_drops_connection(self, dispatcher):
        good, dead = FakeSocket(), FakeSocket(fail=True)
        await dispatcher.connect("1111111111", good)
        await dispatcher.connect("1111111111", dead)

        assert await dispatcher.emit("1111111111", "new_emails", {}) == 1
        assert dispatcher.connection_count("1111111111") == 1

    async def test_disconnect_last_connection(self, dispatcher):
        socket = FakeSocket()
        await dispatcher.connect("1111111111", socket)
        await dispatcher.disconnect("1111111111", socket)
        await dispatcher.disconnect("1111111111", socket)
        assert dispatcher.is_connected("1111111111") is False


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("ping", True),
        ('"ping"', True),
        ('{"type": "ping"}', True),
        ('{"event": "ping"}', True),
        ("hello", False),
        ('{"type": "other"}', False),
    ],
)
def test_ping_forms(raw: str, expected: bool):
    assert _is_ping(raw) is expected


class TestLiveRoute:
    def test_ping_pong(self, client: TestClient, dispatcher: NotificationDispatcher):
        with client.websocket_connect(f"/ws/{USER_GOOGLE_ID}") as websocket:
            websocket.send_text("ping")
            assert websocket.receive_json() == {"event": "pong"}
            assert dispatcher.is_connected(USER_GOOGLE_ID)

    def test_invalid_user_id_is_rejected(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/not-a-google-id"):
                pass
        assert exc_info.value.code == 1008
