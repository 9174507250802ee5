"""
Sync Engine.

Reconciles relay state into the local player and publishes local player
transitions, without re-publishing the transitions it caused itself.
Not thread-safe: one engine is driven by one dispatcher.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from syncwatch.client.events import (
    ChatReceived,
    EngineEvent,
    LinkState,
    LinkStateChanged,
    LocalStateChanged,
    PlayerReady,
    RemoteStateReceived,
    RoomSnapshotReceived,
)
from syncwatch.client.player import MediaPlayer
from syncwatch.config import settings
from syncwatch.exceptions import PlayerBackendUnavailableException
from syncwatch.models.room import ChatMessage, PlayerStatus
from syncwatch.schemas.protocol import (
    PlayerStateMessage,
    PlayerStatePayload,
    RoomSnapshotMessage,
    WireModel,
)
from syncwatch.utils.logging_config import sync_logger


class PlayerReadiness(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class EchoSuppressor:
    """
    Time window in which player notifications are treated as our own echo.

    ``arm()`` is called right before the engine commands the player; every
    notification seen before ``grace`` seconds have passed is swallowed.
    """

    def __init__(self, grace: float, clock: Callable[[], float] = time.monotonic):
        self.grace = grace
        self._clock = clock
        self._expires_at: Optional[float] = None

    def arm(self) -> None:
        self._expires_at = self._clock() + self.grace

    def disarm(self) -> None:
        self._expires_at = None

    @property
    def armed(self) -> bool:
        if self._expires_at is None:
            return False
        if self._clock() >= self._expires_at:
            self._expires_at = None
            return False
        return True


@dataclass
class PendingState:
    state: PlayerStatePayload
    forced: bool = False


class SyncEngine:
    """
    Args:
        player: local media player backend
        publish: non-blocking sink for outbound frames
        drift_threshold: seconds of drift tolerated before seeking
        grace_ms: echo suppression window
        clock: monotonic time source shared with the suppressor
        on_chat: called with every received ``ChatMessage``
        on_room_info: called with every room snapshot (metadata refresh)
    """

    def __init__(
        self,
        player: MediaPlayer,
        publish: Callable[[WireModel], None],
        drift_threshold: Optional[float] = None,
        grace_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        on_chat: Optional[Callable[[ChatMessage], None]] = None,
        on_room_info: Optional[Callable[[RoomSnapshotMessage], None]] = None,
    ):
        self.player = player
        self.publish = publish
        self.drift_threshold = (
            settings.DRIFT_THRESHOLD_SECONDS if drift_threshold is None else drift_threshold
        )
        grace_ms = settings.ECHO_SUPPRESSION_GRACE_MS if grace_ms is None else grace_ms
        self.suppressor = EchoSuppressor(grace_ms / 1000, clock)
        self.on_chat = on_chat
        self.on_room_info = on_room_info

        self.link_state = LinkState.DISCONNECTED
        self.readiness = PlayerReadiness.UNINITIALIZED
        self.room: Optional[RoomSnapshotMessage] = None
        self.loaded_video_id: Optional[str] = None
        self._pending: Optional[PendingState] = None

    @property
    def pending_state(self) -> Optional[PlayerStatePayload]:
        return self._pending.state if self._pending else None

    @property
    def awaiting_player(self) -> bool:
        """A video is loaded but the backend has not confirmed readiness."""
        return self.loaded_video_id is not None and self.readiness != PlayerReadiness.READY

    # ==================== Dispatch ====================

    def dispatch(self, event: EngineEvent) -> None:
        if isinstance(event, RemoteStateReceived):
            self.apply_remote_state(event.state)

        elif isinstance(event, LocalStateChanged):
            self.on_local_state_change(event.status)

        elif isinstance(event, RoomSnapshotReceived):
            self.on_room_snapshot(event.snapshot, hydrate=event.hydrate)

        elif isinstance(event, ChatReceived):
            if self.on_chat:
                self.on_chat(event.message)

        elif isinstance(event, PlayerReady):
            self.on_player_ready()

        elif isinstance(event, LinkStateChanged):
            self.on_link_state_change(event.state)

        else:
            raise TypeError(f"Unknown engine event: {event!r}")

    # ==================== Inbound ====================

    def on_room_snapshot(self, snapshot: RoomSnapshotMessage, hydrate: bool = True) -> None:
        self.room = snapshot
        if self.loaded_video_id != snapshot.video_id:
            self.player.load_or_create(snapshot.video_id)
            self.loaded_video_id = snapshot.video_id
            self.readiness = PlayerReadiness.UNINITIALIZED
            if self.player.is_ready():
                self.readiness = PlayerReadiness.READY

        if self.on_room_info:
            self.on_room_info(snapshot)

        if hydrate:
            self.apply_remote_state(snapshot.player_state, forced=True)

    def apply_remote_state(self, state: PlayerStatePayload, forced: bool = False) -> bool:
        """
        Bring the local player in line with ``state``.

        Returns True when the snapshot was applied now, False when it was
        buffered or ignored.
        """
        if self.readiness != PlayerReadiness.READY:
            # at most one outstanding snapshot; a buffered hydration stays forced
            forced = forced or (self._pending is not None and self._pending.forced)
            self._pending = PendingState(state, forced)
            sync_logger.debug(
                "Player not ready, buffering remote state",
                extra={"status": state.status.name, "position": state.position, "forced": forced},
            )
            return False

        if state.status == PlayerStatus.UNSTARTED:
            return False

        self.suppressor.arm()
        try:
            drift = abs(self.player.get_current_time() - state.position)
            if drift > self.drift_threshold or forced:
                self.player.seek_to(state.position, allow_seek_ahead=True)

            local_status = self.player.get_player_state()
            if state.status == PlayerStatus.PLAYING and local_status != PlayerStatus.PLAYING:
                self.player.play()
            elif state.status == PlayerStatus.PAUSED and local_status != PlayerStatus.PAUSED:
                self.player.pause()
        except PlayerBackendUnavailableException as e:
            # retried once the player reports ready again
            sync_logger.debug("Player backend unavailable", extra={"error": e.message})
            self.readiness = PlayerReadiness.UNINITIALIZED
            self._pending = PendingState(state, forced)
            return False

        sync_logger.debug(
            "Remote state applied",
            extra={"status": state.status.name, "position": state.position, "drift": drift, "forced": forced},
        )
        return True

    def on_player_ready(self) -> None:
        self.readiness = PlayerReadiness.READY
        pending, self._pending = self._pending, None
        if pending is not None:
            self.apply_remote_state(pending.state, forced=pending.forced)

    def on_link_state_change(self, state: LinkState) -> None:
        if state != self.link_state:
            sync_logger.info(f"Relay link {self.link_state.value} -> {state.value}")
        self.link_state = state

    # ==================== Outbound ====================

    def on_local_state_change(self, status: PlayerStatus) -> bool:
        """Publish a player transition unless it is the echo of our own command."""
        if self.suppressor.armed:
            sync_logger.debug("Suppressed echo", extra={"status": status.name})
            return False

        if self.readiness != PlayerReadiness.READY:
            return False

        if self.link_state != LinkState.CONNECTED:
            sync_logger.debug("Relay not connected, dropping local state", extra={"status": status.name})
            return False

        position = max(0.0, self.player.get_current_time())
        self.publish(PlayerStateMessage(payload=PlayerStatePayload(status=status, position=position)))
        return True
