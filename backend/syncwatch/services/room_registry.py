"""
Relay room registry.

Her odanin player state'ini (last write wins) ve katilimcilarini bellekte tutar,
playerState / chatMessage mesajlarini gonderen haric odadaki herkese dagitir.
Oda state'i sadece o odanin ``asyncio.Lock``'u altinda degistirilir.
"""

import asyncio
import time
from typing import Any, Callable, Optional

from syncwatch.config import settings
from syncwatch.exceptions import RoomNotFoundException, RoomVideoMismatchException
from syncwatch.models.room import ChatMessage, PlayerState, PlayerStatus, Room
from syncwatch.schemas.protocol import (
    ChatMessageFrame,
    ChatPayload,
    InitialStateMessage,
    PlayerStateMessage,
    PlayerStatePayload,
    RoomInfoUpdateMessage,
    room_snapshot,
)
from syncwatch.services.connection import Connection
from syncwatch.utils.logging_config import room_logger, websocket_logger


class RoomRegistry:
    """In-memory relay: room state holder and per-room fan-out."""

    def __init__(
        self,
        empty_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rooms: dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self.empty_ttl = settings.ROOM_EMPTY_TTL_SECONDS if empty_ttl is None else empty_ttl
        self._clock = clock
        self._sweeper: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # ==================== Rooms ====================

    async def create_room(self, video_id: str, video_title: str, icebreakers: list[str]) -> Room:
        async with self._lock:
            room = Room(
                video_id=video_id,
                video_title=video_title,
                icebreakers=list(icebreakers),
                created_at=self._clock(),
                empty_since=self._clock(),
            )
            while room.room_id in self.rooms:
                room = Room(
                    video_id=video_id,
                    video_title=video_title,
                    icebreakers=list(icebreakers),
                    created_at=self._clock(),
                    empty_since=self._clock(),
                )
            self.rooms[room.room_id] = room

        room_logger.info(
            "Room created",
            extra={"room_id": room.room_id, "video_id": video_id, "video_title": video_title},
        )
        return room

    async def get_or_create_adhoc_room(self, room_id: str, video_id: str) -> tuple[Room, bool]:
        """
        Istemcinin verdigi room_id + video_id ile oda getir veya olustur.

        Returns:
            (room, created)

        Raises:
            RoomVideoMismatchException: oda baska bir videoya bagliysa
        """
        async with self._lock:
            room = self.rooms.get(room_id)
            if room is not None:
                if room.video_id != video_id:
                    raise RoomVideoMismatchException(room_id, video_id)
                return room, False

            room = Room(
                room_id=room_id,
                video_id=video_id,
                video_title="Loading title...",
                created_at=self._clock(),
                empty_since=self._clock(),
            )
            self.rooms[room_id] = room

        room_logger.info("Ad-hoc room created", extra={"room_id": room_id, "video_id": video_id})
        return room, True

    def get_room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def require_room(self, room_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFoundException(room_id)
        return room

    async def update_room_info(self, room_id: str, video_title: str, icebreakers: list[str]) -> None:
        """Gec cozulen metadata'yi kaydet ve odadaki herkese roomInfoUpdate gonder."""
        room = self.get_room(room_id)
        if room is None:
            return
        async with room.lock:
            room.video_title = video_title
            room.icebreakers = list(icebreakers)
            message = room_snapshot(room, RoomInfoUpdateMessage).to_wire()
            sent = self._broadcast_locked(room, message)

        room_logger.info(
            "Room info updated",
            extra={"room_id": room_id, "video_title": video_title, "recipients": sent},
        )

    # ==================== Membership ====================

    async def join(self, room_id: str, connection: Connection) -> InitialStateMessage:
        """
        Baglantiyi odaya kaydet, guncel snapshot.i (initialState) baglantinin
        kuyruguna bir kez koy ve don.

        Raises:
            RoomNotFoundException: oda yoksa
        """
        room = self.require_room(room_id)
        async with room.lock:
            # sweeper may have disposed the room between lookup and lock
            if self.rooms.get(room_id) is not room:
                raise RoomNotFoundException(room_id)
            room.participants[connection.id] = connection
            room.empty_since = None
            snapshot = room_snapshot(room, InitialStateMessage)
            # queued under the lock so the snapshot precedes every later broadcast
            connection.enqueue(snapshot.to_wire())
            participant_count = room.participant_count

        connection.add_drop_callback(self._schedule_leave)

        websocket_logger.info(
            "Participant joined room",
            extra={
                "room_id": room_id,
                "connection_id": connection.id,
                "room_participants": participant_count,
            },
        )
        return snapshot

    async def leave(self, room_id: str, connection: Connection) -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        async with room.lock:
            if room.participants.pop(connection.id, None) is None:
                return False
            if not room.participants:
                room.empty_since = self._clock()
            remaining = room.participant_count

        websocket_logger.info(
            "Participant left room",
            extra={"room_id": room_id, "connection_id": connection.id, "room_participants": remaining},
        )
        if remaining == 0:
            room_logger.info(
                f"Room is empty, eligible for disposal in {self.empty_ttl:.0f}s",
                extra={"room_id": room_id},
            )
        return True

    def spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        """Run a fire-and-forget task, holding a reference until it finishes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _schedule_leave(self, connection: Connection) -> None:
        self.spawn(self.leave(connection.room_id, connection), name=f"leave-{connection.id}")

    # ==================== Publishing ====================

    async def publish_player_state(
        self, room_id: str, sender: Connection, state: PlayerStatePayload
    ) -> PlayerState:
        """Odanin state'ini ez (last write wins) ve gonderen haric herkese yayinla."""
        room = self.require_room(room_id)
        async with room.lock:
            room.player_state = PlayerState(
                status=PlayerStatus(state.status),
                position=state.position,
                updated_at=self._clock(),
            )
            accepted = room.player_state
            message = PlayerStateMessage(payload=PlayerStatePayload.from_state(accepted)).to_wire()
            sent = self._broadcast_locked(room, message, exclude=sender.id)

        websocket_logger.debug(
            "Player state accepted",
            extra={
                "room_id": room_id,
                "connection_id": sender.id,
                "status": accepted.status.name,
                "position": accepted.position,
                "recipients": sent,
            },
        )
        return accepted

    async def publish_chat(self, room_id: str, sender: Connection, message: ChatMessage) -> int:
        """Chat mesajini gonderen haric herkese ilet; saklanmaz."""
        room = self.require_room(room_id)
        frame = ChatMessageFrame(
            payload=ChatPayload(nickname=message.nickname, body=message.body)
        ).to_wire()
        async with room.lock:
            sent = self._broadcast_locked(room, frame, exclude=sender.id)

        websocket_logger.info(
            "Chat message",
            extra={
                "room_id": room_id,
                "connection_id": sender.id,
                "message_length": len(message.body),
                "recipients": sent,
            },
        )
        return sent

    def _broadcast_locked(self, room: Room, message: dict[str, Any], exclude: Optional[str] = None) -> int:
        """Caller must hold ``room.lock``. Never blocks on a participant."""
        sent = 0
        for connection_id, connection in list(room.participants.items()):
            if connection_id == exclude:
                continue
            if connection.enqueue(message):
                sent += 1
        return sent

    # ==================== Disposal ====================

    async def sweep_empty_rooms(self, now: Optional[float] = None) -> list[str]:
        """TTL'i dolmus bos odalari sil, silinen room_id'leri don."""
        now = self._clock() if now is None else now
        removed: list[str] = []
        async with self._lock:
            for room_id, room in list(self.rooms.items()):
                if room.is_disposable(now, self.empty_ttl):
                    del self.rooms[room_id]
                    removed.append(room_id)

        for room_id in removed:
            room_logger.info("Room disposed after inactivity", extra={"room_id": room_id})
        return removed

    async def run_sweeper(self, interval: Optional[float] = None) -> None:
        interval = interval or settings.ROOM_SWEEP_INTERVAL_SECONDS
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_empty_rooms()
            except Exception as e:
                room_logger.error(f"Room sweep failed: {e}")

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(), name="room-sweeper")

    async def stop_sweeper(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None and not sweeper.done():
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass

    def stats(self) -> dict[str, int]:
        return {
            "rooms": len(self.rooms),
            "participants": sum(room.participant_count for room in self.rooms.values()),
        }


_registry: Optional[RoomRegistry] = None


def get_room_registry() -> RoomRegistry:
    """Process-wide registry instance."""
    global _registry
    if _registry is None:
        _registry = RoomRegistry()
    return _registry
