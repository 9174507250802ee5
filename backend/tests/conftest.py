"""Shared fixtures for relay and sync engine tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import WebSocket
from fastapi.testclient import TestClient

from syncwatch.main import app
from syncwatch.services import room_registry as room_registry_module
from syncwatch.services.connection import Connection
from syncwatch.services.room_registry import RoomRegistry
from syncwatch.utils.rate_limit import limiter, ws_limiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> RoomRegistry:
    return RoomRegistry(empty_ttl=300, clock=clock)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Process-wide registry and rate limiters must not leak between tests."""
    room_registry_module._registry = None
    limiter.reset()
    ws_limiter.connections.clear()
    yield
    room_registry_module._registry = None
    limiter.reset()
    ws_limiter.connections.clear()


def make_connection(room_id: str, connection_id: str | None = None, queue_size: int = 16) -> Connection:
    """Connection over a mocked socket; its writer is never started, so frames stay queued."""
    websocket = AsyncMock(spec=WebSocket)
    return Connection(websocket, room_id, connection_id=connection_id, queue_size=queue_size)


def drain(connection: Connection) -> list[dict]:
    frames = []
    while not connection.queue.empty():
        frames.append(connection.queue.get_nowait())
    return frames


VIDEO_ID = "dQw4w9WgXcQ"
UNPLAYABLE_VIDEO_ID = "aaaaaaaaaaa"


def youtube_handler(request: httpx.Request) -> httpx.Response:
    """Stand-in for the oEmbed endpoint."""
    if request.url.params.get("url", "").endswith(VIDEO_ID):
        return httpx.Response(200, json={"title": "Test Video"})
    return httpx.Response(404)


@pytest.fixture
def client():
    """TestClient on a single event loop, outbound HTTP answered by ``youtube_handler``."""
    with TestClient(app) as test_client:
        real_http_client = app.state.http_client
        app.state.http_client = httpx.AsyncClient(transport=httpx.MockTransport(youtube_handler))
        try:
            yield test_client
        finally:
            app.state.http_client = real_http_client
