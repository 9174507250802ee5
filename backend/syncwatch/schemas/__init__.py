from syncwatch.schemas.room import RoomCreate, RoomCreateResponse, LegacyRoomCreateResponse, RoomResponse
from syncwatch.schemas.protocol import (
    PlayerStatePayload,
    ChatPayload,
    PlayerStateMessage,
    ChatMessageFrame,
    InitialStateMessage,
    RoomInfoUpdateMessage,
    ErrorMessage,
    parse_client_message,
    parse_server_message,
)

__all__ = [
    "RoomCreate", "RoomCreateResponse", "LegacyRoomCreateResponse", "RoomResponse",
    "PlayerStatePayload", "ChatPayload", "PlayerStateMessage", "ChatMessageFrame",
    "InitialStateMessage", "RoomInfoUpdateMessage", "ErrorMessage",
    "parse_client_message", "parse_server_message",
]
