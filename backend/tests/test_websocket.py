"""End-to-end relay tests over the WebSocket endpoint."""

from __future__ import annotations

import pytest
from starlette.websockets import WebSocketDisconnect

from syncwatch.config import settings
from syncwatch.utils.rate_limit import ws_limiter

from conftest import VIDEO_ID


def create_room(client) -> str:
    return client.post("/api/rooms", json={"url": VIDEO_ID}).json()["roomId"]


class TestJoin:
    def test_unknown_room_rejected(self, client) -> None:
        with client.websocket_connect("/ws/missing") as ws:
            frame = ws.receive_json()
            assert frame["type"] == "error"
            assert frame["code"] == "ROOM_001"

            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == 4004

    def test_initial_state_on_join(self, client) -> None:
        room_id = create_room(client)

        with client.websocket_connect(f"/ws/{room_id}") as ws:
            frame = ws.receive_json()

        assert frame["type"] == "initialState"
        assert frame["roomId"] == room_id
        assert frame["videoId"] == VIDEO_ID
        assert frame["videoTitle"] == "Test Video"
        assert frame["playerState"]["status"] == -1


class TestRelay:
    def test_state_and_chat_round_trip(self, client) -> None:
        room_id = create_room(client)

        with client.websocket_connect(f"/ws/{room_id}") as alice:
            alice.receive_json()
            with client.websocket_connect(f"/ws/{room_id}") as bob:
                bob.receive_json()

                alice.send_json({"type": "playerState", "payload": {"status": 1, "position": 45.0}})
                forwarded = bob.receive_json()
                assert forwarded["type"] == "playerState"
                assert forwarded["payload"]["status"] == 1
                assert forwarded["payload"]["position"] == 45.0
                assert "updatedAt" in forwarded["payload"]

                bob.send_json({"type": "chatMessage", "payload": {"nickname": "Bob", "body": "hi"}})
                # alice never sees her own playerState; the next frame is bob's chat
                assert alice.receive_json() == {
                    "type": "chatMessage",
                    "payload": {"nickname": "Bob", "body": "hi"},
                }

                room = client.get(f"/api/rooms/{room_id}").json()
                assert room["participantCount"] == 2
                assert room["playerState"]["status"] == 1
                assert room["playerState"]["position"] == 45.0

            # late joiner is hydrated with the stored state
            with client.websocket_connect(f"/ws/{room_id}") as carol:
                snapshot = carol.receive_json()
                assert snapshot["playerState"]["status"] == 1
                assert snapshot["playerState"]["position"] == 45.0

    def test_ping(self, client) -> None:
        room_id = create_room(client)
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping", "timestamp": 12.0})
            assert ws.receive_json() == {"type": "pong", "timestamp": 12.0}


class TestInvalidFrames:
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "playerState", "payload": {"status": 42, "position": 1}}',
            '{"type": "playerState", "payload": {"status": 1, "position": 1e999}}',
            '{"type": "playerState", "payload": {"status": 1, "position": NaN}}',
            '{"type": "chatMessage", "payload": {"body": ""}}',
            '{"type": "teleport"}',
        ],
    )
    def test_error_frame_keeps_connection(self, client, raw: str) -> None:
        room_id = create_room(client)
        with client.websocket_connect(f"/ws/{room_id}") as ws:
            ws.receive_json()

            ws.send_text(raw)
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "WS_002"

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_non_finite_position_not_stored(self, client) -> None:
        room_id = create_room(client)

        with client.websocket_connect(f"/ws/{room_id}") as ws:
            ws.receive_json()
            ws.send_json({"type": "playerState", "payload": {"status": 1, "position": 30.0}})
            ws.send_text('{"type": "playerState", "payload": {"status": 2, "position": 1e999}}')
            assert ws.receive_json()["code"] == "WS_002"

            with client.websocket_connect(f"/ws/{room_id}") as late:
                snapshot = late.receive_json()

        assert snapshot["playerState"]["status"] == 1
        assert snapshot["playerState"]["position"] == 30.0

    def test_message_rate_limit(self, client, monkeypatch) -> None:
        monkeypatch.setattr(ws_limiter, "burst_limit", 2)
        room_id = create_room(client)

        with client.websocket_connect(f"/ws/{room_id}") as ws:
            ws.receive_json()
            for _ in range(3):
                ws.send_json({"type": "ping"})

            assert ws.receive_json()["type"] == "pong"
            assert ws.receive_json()["type"] == "pong"
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "GEN_003"


class TestAdhocRooms:
    def test_disabled_by_default(self, client) -> None:
        with client.websocket_connect(f"/ws/my-room?v={VIDEO_ID}") as ws:
            assert ws.receive_json()["code"] == "ROOM_001"

    def test_created_on_join_and_metadata_broadcast(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "ALLOW_ADHOC_ROOMS", True)

        with client.websocket_connect(f"/ws/my-room?v={VIDEO_ID}") as ws:
            initial = ws.receive_json()
            assert initial["type"] == "initialState"
            assert initial["roomId"] == "my-room"
            assert initial["videoId"] == VIDEO_ID

            update = ws.receive_json()
            assert update["type"] == "roomInfoUpdate"
            assert update["videoTitle"] == "Test Video"

            with client.websocket_connect("/ws/my-room?v=aaaaaaaaaaa") as other:
                error = other.receive_json()
                assert error["code"] == "ROOM_002"
                with pytest.raises(WebSocketDisconnect) as exc:
                    other.receive_json()
            assert exc.value.code == 4009
