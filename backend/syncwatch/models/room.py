import asyncio
import secrets
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from syncwatch.services.connection import Connection


class PlayerStatus(IntEnum):
    """Player status codes, numerically identical to the YouTube iframe API."""

    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5


@dataclass
class PlayerState:
    status: PlayerStatus = PlayerStatus.UNSTARTED
    position: float = 0.0
    # Relay-assigned, monotonic; 0.0 until the first accepted write
    updated_at: float = 0.0


def generate_room_id() -> str:
    return secrets.token_urlsafe(8)


@dataclass
class Room:
    video_id: str
    video_title: str = ""
    icebreakers: list[str] = field(default_factory=list)
    room_id: str = field(default_factory=generate_room_id)
    player_state: PlayerState = field(default_factory=PlayerState)
    # connection_id -> Connection
    participants: dict[str, "Connection"] = field(default_factory=dict)
    created_at: float = field(default_factory=time.monotonic)
    empty_since: float | None = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def is_disposable(self, now: float, ttl: float) -> bool:
        """Bos ve TTL'i dolmus oda silinebilir"""
        return not self.participants and self.empty_since is not None and now - self.empty_since >= ttl


@dataclass(frozen=True)
class ChatMessage:
    nickname: str
    body: str
