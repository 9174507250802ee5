"""
Events fed into ``SyncEngine.dispatch``.

Player notifications and relay messages arrive on independent streams; both
are turned into one of these objects and handled by a single dispatcher, in
whatever order they arrive.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from syncwatch.models.room import ChatMessage, PlayerStatus
from syncwatch.schemas.protocol import PlayerStatePayload, RoomSnapshotMessage


class LinkState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class RoomSnapshotReceived:
    """``initialState`` (hydrate=True) or ``roomInfoUpdate`` (hydrate=False)."""

    snapshot: RoomSnapshotMessage
    hydrate: bool = True


@dataclass(frozen=True)
class RemoteStateReceived:
    state: PlayerStatePayload


@dataclass(frozen=True)
class ChatReceived:
    message: ChatMessage


@dataclass(frozen=True)
class LocalStateChanged:
    status: PlayerStatus


@dataclass(frozen=True)
class PlayerReady:
    pass


@dataclass(frozen=True)
class LinkStateChanged:
    state: LinkState


EngineEvent = Union[
    RoomSnapshotReceived,
    RemoteStateReceived,
    ChatReceived,
    LocalStateChanged,
    PlayerReady,
    LinkStateChanged,
]
