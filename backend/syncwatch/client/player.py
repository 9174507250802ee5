"""
Media player backend contract.

The sync engine only talks to the player through ``MediaPlayer``; a browser
iframe bridge, a desktop player or ``HeadlessPlayer`` (bots, tests) plug in
behind it.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from syncwatch.config import settings
from syncwatch.exceptions import PlayerBackendUnavailableException
from syncwatch.models.room import PlayerStatus
from syncwatch.utils.logging_config import get_logger

logger = get_logger(__name__)

StateListener = Callable[[PlayerStatus], None]


class MediaPlayer(ABC):
    """Every status transition, commanded or user-originated, is sent to the listeners."""

    def __init__(self):
        self._listeners: list[StateListener] = []

    def add_state_listener(self, callback: StateListener) -> None:
        self._listeners.append(callback)

    def _notify(self, status: PlayerStatus) -> None:
        for callback in list(self._listeners):
            callback(status)

    @abstractmethod
    def load_or_create(self, video_id: str) -> None:
        """Create the player for ``video_id`` or load it into the existing one."""

    @abstractmethod
    def seek_to(self, position: float, allow_seek_ahead: bool = True) -> None: ...

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def get_current_time(self) -> float: ...

    @abstractmethod
    def get_player_state(self) -> PlayerStatus: ...

    @abstractmethod
    def is_ready(self) -> bool:
        """True once the backend accepts seek/play/pause."""


class HeadlessPlayer(MediaPlayer):
    """
    In-process player driven by a clock.

    Position advances only while PLAYING. A seek reports BUFFERING and then
    the status the player had before the seek, like the YouTube iframe does.

    Args:
        clock: monotonic time source (seconds)
        require_manual_ready: stay not-ready after a load until ``mark_ready()``
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        require_manual_ready: bool = False,
    ):
        super().__init__()
        self._clock = clock
        self.require_manual_ready = require_manual_ready
        self.video_id: Optional[str] = None
        self._ready = False
        self._status = PlayerStatus.UNSTARTED
        self._position = 0.0
        self._playing_since: Optional[float] = None
        self.commands: list[tuple] = []

    def load_or_create(self, video_id: str) -> None:
        self.commands.append(("load", video_id))
        if self.video_id == video_id:
            return
        self.video_id = video_id
        self._status = PlayerStatus.UNSTARTED
        self._position = 0.0
        self._playing_since = None
        if not self.require_manual_ready:
            self._ready = True

    def mark_ready(self) -> None:
        if self.video_id is None:
            raise PlayerBackendUnavailableException("No video loaded")
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def _require_ready(self) -> None:
        if not self._ready:
            raise PlayerBackendUnavailableException()

    def _set_status(self, status: PlayerStatus) -> None:
        self._status = status
        self._notify(status)

    def _freeze_position(self) -> None:
        if self._playing_since is not None:
            self._position = self.get_current_time()
            self._playing_since = None

    def get_current_time(self) -> float:
        position = self._position
        if self._playing_since is not None:
            position += self._clock() - self._playing_since
        return position

    def get_player_state(self) -> PlayerStatus:
        return self._status

    def seek_to(self, position: float, allow_seek_ahead: bool = True) -> None:
        self._require_ready()
        self.commands.append(("seek", position))
        previous = self._status
        playing = self._playing_since is not None
        self._position = max(0.0, position)
        self._playing_since = self._clock() if playing else None
        self._set_status(PlayerStatus.BUFFERING)
        self._set_status(previous)

    def play(self) -> None:
        self._require_ready()
        self.commands.append(("play",))
        if self._playing_since is None:
            self._playing_since = self._clock()
        self._set_status(PlayerStatus.PLAYING)

    def pause(self) -> None:
        self._require_ready()
        self.commands.append(("pause",))
        self._freeze_position()
        self._set_status(PlayerStatus.PAUSED)


async def wait_until_ready(player: MediaPlayer, interval: Optional[float] = None) -> None:
    """
    Poll ``player.is_ready()`` every ``interval`` seconds until it reports ready.

    There is no retry ceiling; cancel the awaiting task to give up. A backend
    that is not reachable yet is only logged at debug level.
    """
    interval = interval or settings.PLAYER_READY_POLL_INTERVAL
    attempts = 0
    while True:
        try:
            if player.is_ready():
                logger.debug("Player ready", extra={"attempts": attempts})
                return
        except PlayerBackendUnavailableException as e:
            logger.debug("Player backend not available yet", extra={"error": e.message})
        attempts += 1
        await asyncio.sleep(interval)
