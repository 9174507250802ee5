"""WebSocket wire protocol between the relay and sync engines.

Every frame is a JSON object tagged by ``type``. Field names are camelCase on
the wire; Python attributes stay snake_case.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from syncwatch.exceptions import WebSocketInvalidMessageException
from syncwatch.models.room import PlayerState, PlayerStatus, Room


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Payloads
# =============================================================================


class PlayerStatePayload(WireModel):
    """``{status, position}`` snapshot; ``updatedAt`` is only set by the relay."""

    status: PlayerStatus
    position: float = Field(ge=0, allow_inf_nan=False)
    updated_at: float | None = None

    @classmethod
    def from_state(cls, state: PlayerState) -> PlayerStatePayload:
        return cls(
            status=state.status,
            position=state.position,
            updated_at=state.updated_at,
        )


class ChatPayload(WireModel):
    nickname: str = Field(default="Guest", max_length=64)
    body: str = Field(min_length=1, max_length=2000)

    @field_validator("nickname")
    @classmethod
    def default_blank_nickname(cls, v: str) -> str:
        return v.strip() or "Guest"

    @field_validator("body")
    @classmethod
    def reject_blank_body(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message body must not be blank")
        return v


# =============================================================================
# Bidirectional messages
# =============================================================================


class PlayerStateMessage(WireModel):
    type: Literal["playerState"] = "playerState"
    payload: PlayerStatePayload


class ChatMessageFrame(WireModel):
    type: Literal["chatMessage"] = "chatMessage"
    payload: ChatPayload


# =============================================================================
# Client -> Server
# =============================================================================


class PingMessage(WireModel):
    type: Literal["ping"] = "ping"
    timestamp: float | None = None


# =============================================================================
# Server -> Client
# =============================================================================


class RoomSnapshotMessage(WireModel):
    room_id: str
    video_id: str
    video_title: str
    icebreakers: list[str]
    player_state: PlayerStatePayload


class InitialStateMessage(RoomSnapshotMessage):
    """Sent exactly once per connection, right after join."""

    type: Literal["initialState"] = "initialState"


class RoomInfoUpdateMessage(RoomSnapshotMessage):
    """Sent when room metadata is resolved after participants already joined."""

    type: Literal["roomInfoUpdate"] = "roomInfoUpdate"


class PongMessage(WireModel):
    type: Literal["pong"] = "pong"
    timestamp: float | None = None


class ErrorMessage(WireModel):
    type: Literal["error"] = "error"
    code: str
    message: str
    details: dict[str, Any] | None = None


ClientMessage = Annotated[
    Union[PlayerStateMessage, ChatMessageFrame, PingMessage],
    Field(discriminator="type"),
]

ServerMessage = Annotated[
    Union[
        InitialStateMessage,
        RoomInfoUpdateMessage,
        PlayerStateMessage,
        ChatMessageFrame,
        PongMessage,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


def parse_client_message(data: Any) -> PlayerStateMessage | ChatMessageFrame | PingMessage:
    """Validate an inbound frame from a participant."""
    try:
        return _client_adapter.validate_python(data)
    except ValidationError as e:
        raise WebSocketInvalidMessageException(_describe(e)) from e


def parse_server_message(data: Any):
    """Validate an inbound frame from the relay (used by the sync engine session)."""
    try:
        return _server_adapter.validate_python(data)
    except ValidationError as e:
        raise WebSocketInvalidMessageException(_describe(e)) from e


def room_snapshot(room: Room, message_type: type[RoomSnapshotMessage] = InitialStateMessage) -> RoomSnapshotMessage:
    return message_type(
        room_id=room.room_id,
        video_id=room.video_id,
        video_title=room.video_title,
        icebreakers=list(room.icebreakers),
        player_state=PlayerStatePayload.from_state(room.player_state),
    )
