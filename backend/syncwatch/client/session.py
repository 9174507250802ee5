"""
SyncEngineSession: one room membership of one client.

Constructed on room entry, torn down with ``close()`` (or ``async with``).
Owns the relay link, the engine and the single dispatcher task that feeds it.
"""

import asyncio
import json
import time
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import quote, urlencode

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from syncwatch.client.engine import SyncEngine
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
from syncwatch.client.player import MediaPlayer, wait_until_ready
from syncwatch.config import settings
from syncwatch.exceptions import (
    ErrorCode,
    RoomNotFoundException,
    TransportLostException,
    ValidationException,
    WebSocketInvalidMessageException,
)
from syncwatch.models.room import ChatMessage, PlayerStatus
from syncwatch.schemas.protocol import (
    ChatMessageFrame,
    ChatPayload,
    ErrorMessage,
    InitialStateMessage,
    PlayerStateMessage,
    RoomInfoUpdateMessage,
    RoomSnapshotMessage,
    WireModel,
    parse_server_message,
)
from syncwatch.utils.logging_config import sync_logger

# Close code the relay uses for an unknown room
CLOSE_ROOM_NOT_FOUND = 4004


class RelayLink(Protocol):
    """Minimal transport the session needs; closing raises ``TransportLostException``."""

    async def send(self, data: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self) -> None: ...


LinkFactory = Callable[[str], Awaitable[RelayLink]]


def _close_code(exc: ConnectionClosed) -> Optional[int]:
    return exc.rcvd.code if exc.rcvd is not None else None


class WebSocketRelayLink:
    """``RelayLink`` over the ``websockets`` client."""

    def __init__(self, websocket):
        self._websocket = websocket

    @classmethod
    async def connect(cls, url: str) -> "WebSocketRelayLink":
        try:
            websocket = await websockets.connect(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportLostException(f"Could not connect to relay: {e}") from e
        return cls(websocket)

    async def send(self, data: str) -> None:
        try:
            await self._websocket.send(data)
        except ConnectionClosed as e:
            raise TransportLostException(str(e), _close_code(e)) from e

    async def recv(self) -> str:
        try:
            data = await self._websocket.recv()
        except ConnectionClosed as e:
            raise TransportLostException(str(e), _close_code(e)) from e
        return data if isinstance(data, str) else data.decode()

    async def close(self) -> None:
        await self._websocket.close()


def build_room_url(base_url: str, room_id: str, video_hint: Optional[str] = None) -> str:
    """``http(s)://host`` or ``ws(s)://host`` -> ``ws(s)://host/ws/{room_id}[?v=...]``."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    url = f"{base}/ws/{quote(room_id, safe='')}"
    if video_hint:
        url += "?" + urlencode({"v": video_hint})
    return url


class SyncEngineSession:
    """
    Args:
        base_url: relay address, e.g. ``http://localhost:8005``
        room_id: room to join
        player: local media player backend
        link_factory: async callable ``url -> RelayLink`` (websockets by default)
        on_chat: chat transcript callback, also used for optimistic local echo
        on_room_info: called with each room snapshot (title, icebreakers)
        reconnect: reconnect with exponential backoff instead of failing
        video_hint: ``?v=`` hint for ad-hoc rooms
    """

    def __init__(
        self,
        base_url: str,
        room_id: str,
        player: MediaPlayer,
        link_factory: Optional[LinkFactory] = None,
        on_chat: Optional[Callable[[ChatMessage], None]] = None,
        on_room_info: Optional[Callable[[RoomSnapshotMessage], None]] = None,
        reconnect: bool = True,
        video_hint: Optional[str] = None,
        drift_threshold: Optional[float] = None,
        grace_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        ready_poll_interval: Optional[float] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self.room_id = room_id
        self.url = build_room_url(base_url, room_id, video_hint)
        self.player = player
        self.reconnect = reconnect
        self.ready_poll_interval = ready_poll_interval or settings.PLAYER_READY_POLL_INTERVAL
        self.initial_delay = initial_delay or settings.RECONNECT_INITIAL_DELAY
        self.max_delay = max_delay or settings.RECONNECT_MAX_DELAY
        self._link_factory = link_factory or WebSocketRelayLink.connect
        self._on_chat = on_chat

        self.engine = SyncEngine(
            player,
            self._publish,
            drift_threshold=drift_threshold,
            grace_ms=grace_ms,
            clock=clock,
            on_chat=on_chat,
            on_room_info=on_room_info,
        )
        player.add_state_listener(self._on_player_state)

        self.joined = asyncio.Event()
        self.connect_count = 0
        self._events: asyncio.Queue[EngineEvent] = asyncio.Queue()
        self._outbound: asyncio.Queue[str] = asyncio.Queue()
        self._link: Optional[RelayLink] = None
        self._link_task: Optional[asyncio.Task] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._ready_task: Optional[asyncio.Task] = None
        self._closed = False

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        if self._link_task is not None:
            return
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name=f"sync-dispatch-{self.room_id}")
        self._link_task = asyncio.create_task(self._run_link(), name=f"sync-link-{self.room_id}")

    async def wait_joined(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the first ``initialState``.

        Raises:
            RoomNotFoundException: the relay does not know the room
            TransportLostException: the link failed and reconnect is off
            asyncio.TimeoutError: nothing arrived within ``timeout``
        """
        if self._link_task is None:
            raise RuntimeError("Session not started")
        joined = asyncio.ensure_future(self.joined.wait())
        try:
            done, _ = await asyncio.wait(
                {joined, self._link_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not joined.done():
                joined.cancel()
        if joined in done:
            return
        if self._link_task in done:
            self._link_task.result()
            raise TransportLostException("Session closed before joining")
        raise asyncio.TimeoutError()

    async def wait(self) -> None:
        """Run until the link gives up; re-raises the terminal error."""
        if self._link_task is not None:
            await self._link_task

    async def close(self) -> None:
        self._closed = True
        tasks = [t for t in (self._link_task, self._dispatcher, self._ready_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._close_link()
        self.engine.on_link_state_change(LinkState.DISCONNECTED)
        sync_logger.info("Sync session closed", extra={"room_id": self.room_id})

    async def __aenter__(self) -> "SyncEngineSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ==================== Chat ====================

    def send_chat(self, nickname: str, body: str) -> ChatMessage:
        """Publish a chat line and render it locally right away."""
        try:
            payload = ChatPayload(nickname=nickname, body=body)
        except ValidationError as e:
            raise ValidationException("Invalid chat message", {"errors": e.errors()}) from e

        message = ChatMessage(nickname=payload.nickname, body=payload.body)
        if self.engine.link_state == LinkState.CONNECTED:
            self._publish(ChatMessageFrame(payload=payload))
        else:
            sync_logger.debug("Relay not connected, chat shown locally only", extra={"room_id": self.room_id})
        if self._on_chat:
            self._on_chat(message)
        return message

    # ==================== Internals ====================

    def _publish(self, message: WireModel) -> None:
        self._outbound.put_nowait(json.dumps(message.to_wire()))

    def _on_player_state(self, status: PlayerStatus) -> None:
        self._events.put_nowait(LocalStateChanged(status))

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self.engine.dispatch(event)
            except Exception as e:
                sync_logger.error(
                    "Sync engine failed handling event",
                    extra={"room_id": self.room_id, "event": type(event).__name__, "error": str(e)},
                )
            if isinstance(event, RoomSnapshotReceived) and event.hydrate:
                self.joined.set()
            if self.engine.awaiting_player:
                self._watch_player_ready()

    def _watch_player_ready(self) -> None:
        if self._ready_task is None or self._ready_task.done():
            self._ready_task = asyncio.create_task(self._await_player_ready(), name=f"sync-ready-{self.room_id}")

    async def _await_player_ready(self) -> None:
        await wait_until_ready(self.player, self.ready_poll_interval)
        self._events.put_nowait(PlayerReady())

    async def _run_link(self) -> None:
        delay = self.initial_delay
        while not self._closed:
            self._events.put_nowait(LinkStateChanged(LinkState.CONNECTING))
            try:
                self._link = await self._link_factory(self.url)
                self.connect_count += 1
                delay = self.initial_delay
                sync_logger.info("Connected to relay", extra={"room_id": self.room_id, "url": self.url})
                self._events.put_nowait(LinkStateChanged(LinkState.CONNECTED))
                await self._pump(self._link)
            except TransportLostException as e:
                self._events.put_nowait(LinkStateChanged(LinkState.DISCONNECTED))
                await self._close_link()
                if e.close_code == CLOSE_ROOM_NOT_FOUND:
                    raise RoomNotFoundException(self.room_id) from e
                if not self.reconnect:
                    raise
                sync_logger.warning(
                    f"Relay link lost, reconnecting in {delay:.1f}s",
                    extra={"room_id": self.room_id, "error": e.message, "close_code": e.close_code},
                )
            except RoomNotFoundException:
                self._events.put_nowait(LinkStateChanged(LinkState.DISCONNECTED))
                await self._close_link()
                sync_logger.warning("Relay rejected join: room not found", extra={"room_id": self.room_id})
                raise

            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_delay)

    async def _pump(self, link: RelayLink) -> None:
        # frames queued for a previous link are stale
        while not self._outbound.empty():
            self._outbound.get_nowait()
        writer = asyncio.create_task(self._write_loop(link), name=f"sync-writer-{self.room_id}")
        try:
            while True:
                raw = await link.recv()
                self._handle_frame(raw)
        finally:
            writer.cancel()

    async def _write_loop(self, link: RelayLink) -> None:
        while True:
            data = await self._outbound.get()
            try:
                await link.send(data)
            except TransportLostException as e:
                # the reader sees the same loss and drives reconnection
                sync_logger.debug("Send failed", extra={"room_id": self.room_id, "error": e.message})
                return

    async def _close_link(self) -> None:
        link, self._link = self._link, None
        if link is None:
            return
        try:
            await link.close()
        except (TransportLostException, OSError) as e:
            sync_logger.debug("Relay link close failed", extra={"error": str(e)})

    def _handle_frame(self, raw: str) -> None:
        try:
            message = parse_server_message(json.loads(raw))
        except (ValueError, WebSocketInvalidMessageException) as e:
            sync_logger.warning("Ignoring malformed relay frame", extra={"room_id": self.room_id, "error": str(e)})
            return

        if isinstance(message, InitialStateMessage):
            self._events.put_nowait(RoomSnapshotReceived(message, hydrate=True))

        elif isinstance(message, RoomInfoUpdateMessage):
            self._events.put_nowait(RoomSnapshotReceived(message, hydrate=False))

        elif isinstance(message, PlayerStateMessage):
            self._events.put_nowait(RemoteStateReceived(message.payload))

        elif isinstance(message, ChatMessageFrame):
            self._events.put_nowait(
                ChatReceived(ChatMessage(nickname=message.payload.nickname, body=message.payload.body))
            )

        elif isinstance(message, ErrorMessage):
            if message.code == ErrorCode.ROOM_NOT_FOUND.value:
                raise RoomNotFoundException(self.room_id, message.message)
            sync_logger.warning(
                "Relay reported an error",
                extra={"room_id": self.room_id, "code": message.code, "error": message.message},
            )
