"""
Participant connection for the relay.

Her baglanti kendi sinirli outbound kuyruguna ve bir writer task'ina sahiptir.
Broadcast sadece ``put_nowait`` yapar; kuyrugu dolan veya gonderimi zaman asimina
ugrayan baglanti dusurulur, oda asla yavas bir katilimci icin beklemez.
"""

import asyncio
import uuid
from typing import Any, Callable, Optional

from fastapi import WebSocket

from syncwatch.config import settings
from syncwatch.error_handlers import WebSocketErrorHandler
from syncwatch.exceptions import WebSocketSendException
from syncwatch.utils.logging_config import websocket_logger

# WebSocket close code used when a participant cannot keep up
CLOSE_TOO_SLOW = 1013


class Connection:
    def __init__(
        self,
        websocket: WebSocket,
        room_id: str,
        connection_id: Optional[str] = None,
        queue_size: Optional[int] = None,
        send_timeout: Optional[float] = None,
    ):
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.room_id = room_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(
            maxsize=queue_size or settings.SEND_QUEUE_SIZE
        )
        self.send_timeout = send_timeout or settings.SEND_TIMEOUT_SECONDS
        self.closed = False
        self._writer: Optional[asyncio.Task] = None
        self._on_drop: list[Callable[["Connection"], None]] = []

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, room_id={self.room_id!r})"

    def add_drop_callback(self, callback: Callable[["Connection"], None]) -> None:
        self._on_drop.append(callback)

    def start(self) -> None:
        """Writer task'ini baslat."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"ws-writer-{self.id}")

    def enqueue(self, message: dict[str, Any]) -> bool:
        """
        Mesaji bloklamadan kuyruga ekle.

        Returns:
            False if the connection is closed or could not keep up (it is dropped).
        """
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            WebSocketErrorHandler.log_websocket_error(
                WebSocketSendException(self.id, "send queue full"),
                room_id=self.room_id,
                connection_id=self.id,
                message_type=message.get("type"),
            )
            self.drop("Participant too slow")
            return False

    async def _write_loop(self) -> None:
        while not self.closed:
            message = await self.queue.get()
            try:
                await asyncio.wait_for(self.websocket.send_json(message), timeout=self.send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                WebSocketErrorHandler.log_websocket_error(
                    error=e,
                    room_id=self.room_id,
                    connection_id=self.id,
                    message_type=message.get("type"),
                )
                self.drop("Send failed")
                return

    def drop(self, reason: str) -> None:
        """Baglantiyi olu isaretle, odadan cikar ve websocket'i arka planda kapat."""
        if self.closed:
            return
        self.closed = True
        websocket_logger.warning(
            f"Dropping connection: {reason}",
            extra={"room_id": self.room_id, "connection_id": self.id},
        )
        for callback in self._on_drop:
            callback(self)
        try:
            asyncio.get_running_loop().create_task(self._close_socket(reason))
        except RuntimeError:
            pass  # no running loop; the socket is already gone with it

    async def _close_socket(self, reason: str) -> None:
        try:
            await self.websocket.close(code=CLOSE_TOO_SLOW, reason=reason[:123])
        except Exception as e:
            websocket_logger.debug(f"Close after drop failed: {e}")
        await self.stop()

    async def stop(self) -> None:
        """Writer task'ini durdur (handler cikarken cagrilir)."""
        self.closed = True
        writer, self._writer = self._writer, None
        if writer is not None and writer is not asyncio.current_task() and not writer.done():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
