"""Tests for SyncEngineSession over a scripted relay link."""

from __future__ import annotations

import asyncio
import json

import pytest

from syncwatch.client.events import LinkState
from syncwatch.client.player import HeadlessPlayer
from syncwatch.client.session import SyncEngineSession, build_room_url
from syncwatch.exceptions import RoomNotFoundException, TransportLostException, ValidationException
from syncwatch.models.room import ChatMessage, PlayerStatus

from conftest import FakeClock

VIDEO_ID = "dQw4w9WgXcQ"


def initial_state(status: int, position: float, title: str = "Song") -> dict:
    return {
        "type": "initialState",
        "roomId": "r1",
        "videoId": VIDEO_ID,
        "videoTitle": title,
        "icebreakers": ["Q1"],
        "playerState": {"status": status, "position": position, "updatedAt": 1.0},
    }


class FakeLink:
    def __init__(self, script: list) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False
        for item in script:
            self.push(item)

    def push(self, item) -> None:
        self.incoming.put_nowait(item if isinstance(item, Exception) else json.dumps(item))

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class FakeRelay:
    """Hands out one scripted link per connection attempt."""

    def __init__(self, *scripts: list) -> None:
        self.scripts = list(scripts)
        self.links: list[FakeLink] = []
        self.urls: list[str] = []

    async def connect(self, url: str) -> FakeLink:
        self.urls.append(url)
        link = FakeLink(self.scripts.pop(0) if self.scripts else [])
        self.links.append(link)
        return link


async def until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def make_session(
    relay: FakeRelay,
    player: HeadlessPlayer | None = None,
    clock: FakeClock | None = None,
    **kwargs,
) -> SyncEngineSession:
    """Player and echo suppressor share one clock that only moves when a test advances it."""
    clock = clock or FakeClock()
    return SyncEngineSession(
        "http://relay.test",
        "r1",
        player or HeadlessPlayer(clock=clock),
        clock=clock,
        link_factory=relay.connect,
        initial_delay=0.01,
        max_delay=0.02,
        ready_poll_interval=0.01,
        **kwargs,
    )


def played(player: HeadlessPlayer) -> list[tuple]:
    return [c for c in player.commands if c[0] != "load"]


class TestRoomUrl:
    def test_http_to_ws(self) -> None:
        assert build_room_url("http://localhost:8005/", "r1") == "ws://localhost:8005/ws/r1"

    def test_https_to_wss_with_hint(self) -> None:
        assert build_room_url("https://sync.example", "a b", VIDEO_ID) == (
            f"wss://sync.example/ws/a%20b?v={VIDEO_ID}"
        )

    def test_ws_kept(self) -> None:
        assert build_room_url("ws://h", "r1") == "ws://h/ws/r1"


class TestJoin:
    @pytest.mark.asyncio
    async def test_hydrates_from_initial_state(self) -> None:
        relay = FakeRelay([initial_state(2, 42.0)])
        rooms = []
        session = make_session(relay, on_room_info=rooms.append)

        async with session:
            await session.wait_joined(timeout=1)

            assert relay.urls == ["ws://relay.test/ws/r1"]
            assert session.player.video_id == VIDEO_ID
            assert played(session.player) == [("seek", 42.0), ("pause",)]
            assert rooms[0].video_title == "Song"
            assert session.engine.link_state is LinkState.CONNECTED
            await asyncio.sleep(0.02)
            assert relay.links[0].sent == []

        assert relay.links[0].closed
        assert session.engine.link_state is LinkState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_waits_for_player_readiness(self) -> None:
        relay = FakeRelay([initial_state(2, 42.0)])
        player = HeadlessPlayer(clock=FakeClock(), require_manual_ready=True)

        async with make_session(relay, player) as session:
            await session.wait_joined(timeout=1)
            assert played(player) == []
            assert session.engine.pending_state.position == 42.0

            player.mark_ready()
            await until(lambda: played(player))

            assert played(player) == [("seek", 42.0), ("pause",)]

    @pytest.mark.asyncio
    async def test_error_frame_room_not_found(self) -> None:
        relay = FakeRelay(
            [
                {"type": "error", "code": "ROOM_001", "message": "Failed to connect: room not found"},
                TransportLostException("closed", 4004),
            ]
        )
        session = make_session(relay)
        await session.start()

        with pytest.raises(RoomNotFoundException):
            await session.wait_joined(timeout=1)

        assert len(relay.urls) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_close_code_4004_room_not_found(self) -> None:
        relay = FakeRelay([TransportLostException("closed", 4004)])
        session = make_session(relay)
        await session.start()

        with pytest.raises(RoomNotFoundException):
            await asyncio.wait_for(session.wait(), 1)

        await session.close()


class TestReconnect:
    @pytest.mark.asyncio
    async def test_rehydrates_after_transport_loss(self) -> None:
        relay = FakeRelay(
            [initial_state(2, 10.0), TransportLostException("abnormal closure", 1006)],
            [initial_state(1, 50.0)],
        )
        session = make_session(relay)

        async with session:
            await until(lambda: session.player.get_player_state() is PlayerStatus.PLAYING)

            assert session.connect_count == 2
            assert played(session.player) == [("seek", 10.0), ("pause",), ("seek", 50.0), ("play",)]

    @pytest.mark.asyncio
    async def test_no_reconnect_surfaces_transport_loss(self) -> None:
        relay = FakeRelay([initial_state(2, 10.0), TransportLostException("abnormal closure", 1006)])
        session = make_session(relay, reconnect=False)
        await session.start()

        with pytest.raises(TransportLostException) as exc:
            await asyncio.wait_for(session.wait(), 1)

        assert exc.value.close_code == 1006
        assert len(relay.urls) == 1
        await session.close()


class TestTraffic:
    @pytest.mark.asyncio
    async def test_local_transition_is_published(self) -> None:
        clock = FakeClock()
        relay = FakeRelay([initial_state(2, 42.0)])
        player = HeadlessPlayer(clock=clock)

        async with make_session(relay, player, clock=clock) as session:
            await session.wait_joined(timeout=1)
            clock.advance(1)

            player.play()
            link = relay.links[0]
            await until(lambda: link.sent)

            assert link.sent == [{"type": "playerState", "payload": {"status": 1, "position": 42.0}}]

    @pytest.mark.asyncio
    async def test_commanded_transition_is_not_published(self) -> None:
        clock = FakeClock()
        relay = FakeRelay([initial_state(2, 42.0)])
        player = HeadlessPlayer(clock=clock)

        async with make_session(relay, player, clock=clock) as session:
            await session.wait_joined(timeout=1)
            link = relay.links[0]
            link.push({"type": "playerState", "payload": {"status": 1, "position": 45.0, "updatedAt": 2.0}})
            await until(lambda: player.get_player_state() is PlayerStatus.PLAYING)
            await asyncio.sleep(0.02)

            assert link.sent == []

    @pytest.mark.asyncio
    async def test_chat_in_and_out(self) -> None:
        relay = FakeRelay([initial_state(2, 0.0)])
        transcript = []

        async with make_session(relay, on_chat=transcript.append) as session:
            await session.wait_joined(timeout=1)
            link = relay.links[0]

            link.push({"type": "chatMessage", "payload": {"nickname": "Ann", "body": "hi"}})
            await until(lambda: transcript)

            sent = session.send_chat("Bob", "hello there")
            await until(lambda: link.sent)

            assert transcript == [ChatMessage("Ann", "hi"), ChatMessage("Bob", "hello there")]
            assert sent == ChatMessage("Bob", "hello there")
            assert link.sent == [{"type": "chatMessage", "payload": {"nickname": "Bob", "body": "hello there"}}]

    @pytest.mark.asyncio
    async def test_blank_chat_rejected(self) -> None:
        relay = FakeRelay([initial_state(2, 0.0)])
        async with make_session(relay) as session:
            await session.wait_joined(timeout=1)
            with pytest.raises(ValidationException):
                session.send_chat("Bob", "   ")

    @pytest.mark.asyncio
    async def test_malformed_frame_ignored(self) -> None:
        relay = FakeRelay([{"type": "bogus"}, initial_state(2, 3.0)])
        async with make_session(relay) as session:
            await session.wait_joined(timeout=1)
            assert played(session.player) == [("seek", 3.0), ("pause",)]
