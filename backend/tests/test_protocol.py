"""Tests for the relay wire protocol."""

from __future__ import annotations

import pytest

from syncwatch.exceptions import ErrorCode, WebSocketInvalidMessageException
from syncwatch.models.room import PlayerState, PlayerStatus, Room
from syncwatch.schemas.protocol import (
    ChatMessageFrame,
    ErrorMessage,
    InitialStateMessage,
    PingMessage,
    PlayerStateMessage,
    PlayerStatePayload,
    RoomInfoUpdateMessage,
    parse_client_message,
    parse_server_message,
    room_snapshot,
)


class TestClientMessages:
    """Inbound frames from participants."""

    def test_player_state(self) -> None:
        msg = parse_client_message({"type": "playerState", "payload": {"status": 1, "position": 12.5}})
        assert isinstance(msg, PlayerStateMessage)
        assert msg.payload.status is PlayerStatus.PLAYING
        assert msg.payload.position == 12.5
        assert msg.payload.updated_at is None

    def test_chat_defaults_nickname(self) -> None:
        msg = parse_client_message({"type": "chatMessage", "payload": {"body": "hello"}})
        assert isinstance(msg, ChatMessageFrame)
        assert msg.payload.nickname == "Guest"

    def test_blank_nickname_becomes_guest(self) -> None:
        msg = parse_client_message({"type": "chatMessage", "payload": {"nickname": "  ", "body": "hi"}})
        assert msg.payload.nickname == "Guest"

    def test_ping(self) -> None:
        msg = parse_client_message({"type": "ping", "timestamp": 1.0})
        assert isinstance(msg, PingMessage)

    @pytest.mark.parametrize(
        "data",
        [
            None,
            [],
            {"type": "nope"},
            {"type": "playerState"},
            {"type": "playerState", "payload": {"status": 7, "position": 1}},
            {"type": "playerState", "payload": {"status": 1, "position": -3}},
            {"type": "chatMessage", "payload": {"body": "   "}},
            {"type": "initialState", "roomId": "x"},
        ],
    )
    def test_invalid_frames_rejected(self, data) -> None:
        with pytest.raises(WebSocketInvalidMessageException) as exc:
            parse_client_message(data)
        assert exc.value.code == ErrorCode.WS_INVALID_MESSAGE


class TestServerMessages:
    """Frames the relay sends."""

    def test_snapshot_uses_camel_case(self) -> None:
        room = Room(video_id="dQw4w9WgXcQ", video_title="Song", icebreakers=["Q1"], room_id="r1")
        room.player_state = PlayerState(status=PlayerStatus.PAUSED, position=42.0, updated_at=5.0)

        wire = room_snapshot(room).to_wire()

        assert wire == {
            "type": "initialState",
            "roomId": "r1",
            "videoId": "dQw4w9WgXcQ",
            "videoTitle": "Song",
            "icebreakers": ["Q1"],
            "playerState": {"status": 2, "position": 42.0, "updatedAt": 5.0},
        }

    def test_room_info_update_type(self) -> None:
        room = Room(video_id="dQw4w9WgXcQ", room_id="r1")
        assert room_snapshot(room, RoomInfoUpdateMessage).to_wire()["type"] == "roomInfoUpdate"

    def test_parse_server_snapshot(self) -> None:
        msg = parse_server_message(
            {
                "type": "initialState",
                "roomId": "r1",
                "videoId": "dQw4w9WgXcQ",
                "videoTitle": "Song",
                "icebreakers": [],
                "playerState": {"status": -1, "position": 0},
            }
        )
        assert isinstance(msg, InitialStateMessage)
        assert msg.player_state.status is PlayerStatus.UNSTARTED

    def test_error_frame_omits_empty_details(self) -> None:
        wire = ErrorMessage(code="ROOM_001", message="gone").to_wire()
        assert wire == {"type": "error", "code": "ROOM_001", "message": "gone"}

    def test_payload_from_state(self) -> None:
        payload = PlayerStatePayload.from_state(PlayerState(PlayerStatus.PLAYING, 3.0, 9.0))
        assert payload.to_wire() == {"status": 1, "position": 3.0, "updatedAt": 9.0}
