import json
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from syncwatch.config import settings
from syncwatch.error_handlers import WebSocketErrorHandler
from syncwatch.exceptions import (
    AppException,
    RateLimitExceededException,
    RoomNotFoundException,
    RoomVideoMismatchException,
    WebSocketInvalidMessageException,
)
from syncwatch.models.room import ChatMessage
from syncwatch.schemas.protocol import (
    ChatMessageFrame,
    ErrorMessage,
    PingMessage,
    PlayerStateMessage,
    PongMessage,
    parse_client_message,
)
from syncwatch.services.connection import Connection
from syncwatch.services.room_registry import get_room_registry
from syncwatch.services.room_service import RoomService
from syncwatch.services.video_service import VIDEO_ID_PATTERN
from syncwatch.utils.logging_config import websocket_logger
from syncwatch.utils.rate_limit import check_websocket_rate_limit, cleanup_websocket_rate_limit

router = APIRouter(tags=["WebSocket"])

# Application close codes
CLOSE_ROOM_NOT_FOUND = 4004
CLOSE_ROOM_CONFLICT = 4009


@router.websocket("/ws/{room_id}")
async def websocket_room(
    websocket: WebSocket,
    room_id: str,
    v: Optional[str] = Query(None, description="Video ID hint for ad-hoc rooms"),
):
    """
    Per-room relay endpoint.
    Handles: join hydration (initialState), playerState and chatMessage fan-out, ping.
    """
    registry = get_room_registry()
    await websocket.accept()

    try:
        if settings.ALLOW_ADHOC_ROOMS and v and VIDEO_ID_PATTERN.match(v):
            room, created = await registry.get_or_create_adhoc_room(room_id, v)
            if created:
                service = RoomService(registry, getattr(websocket.app.state, "http_client", None))
                service.schedule_adhoc_metadata(room)
        registry.require_room(room_id)
    except RoomNotFoundException as e:
        websocket_logger.info("Join rejected: room not found", extra={"room_id": room_id})
        await WebSocketErrorHandler.handle_connection_error(
            websocket, e, "Room not found", CLOSE_ROOM_NOT_FOUND
        )
        return
    except RoomVideoMismatchException as e:
        await WebSocketErrorHandler.handle_connection_error(
            websocket, e, "Room bound to another video", CLOSE_ROOM_CONFLICT
        )
        return

    connection = Connection(websocket, room_id)
    try:
        await registry.join(room_id, connection)
    except RoomNotFoundException as e:
        await WebSocketErrorHandler.handle_connection_error(
            websocket, e, "Room not found", CLOSE_ROOM_NOT_FOUND
        )
        return

    connection.start()

    try:
        while not connection.closed:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                data = None

            is_allowed, error_msg = check_websocket_rate_limit(connection.id)
            if not is_allowed:
                limited = RateLimitExceededException(error_msg or "Rate limit exceeded")
                connection.enqueue(ErrorMessage(code=limited.code.value, message=limited.message).to_wire())
                continue

            try:
                message = parse_client_message(data)
            except WebSocketInvalidMessageException as e:
                WebSocketErrorHandler.log_websocket_error(
                    e,
                    room_id=room_id,
                    connection_id=connection.id,
                    message_type=data.get("type") if isinstance(data, dict) else None,
                )
                connection.enqueue(ErrorMessage(code=e.code.value, message=e.message, details=e.details).to_wire())
                continue

            websocket_logger.debug(
                "WebSocket message received",
                extra={"room_id": room_id, "connection_id": connection.id, "msg_type": message.type}
            )

            if isinstance(message, PlayerStateMessage):
                await registry.publish_player_state(room_id, connection, message.payload)

            elif isinstance(message, ChatMessageFrame):
                await registry.publish_chat(
                    room_id,
                    connection,
                    ChatMessage(nickname=message.payload.nickname, body=message.payload.body),
                )

            elif isinstance(message, PingMessage):
                connection.enqueue(PongMessage(timestamp=message.timestamp).to_wire())

    except WebSocketDisconnect:
        websocket_logger.info(
            "WebSocket disconnected",
            extra={"room_id": room_id, "connection_id": connection.id}
        )
    except AppException as e:
        # e.g. the room was disposed underneath an open connection
        websocket_logger.warning(
            "WebSocket closed after relay error",
            extra={"room_id": room_id, "connection_id": connection.id, "error": e.message}
        )
    except Exception as e:
        websocket_logger.error(
            "WebSocket error",
            extra={
                "room_id": room_id,
                "connection_id": connection.id,
                "error": str(e),
                "error_type": type(e).__name__
            }
        )
    finally:
        await registry.leave(room_id, connection)
        await connection.stop()
        cleanup_websocket_rate_limit(connection.id)
