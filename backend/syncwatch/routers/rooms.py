"""
Rooms Router for SyncWatch

Oda olusturma (sunucu tarafinda video cozumleme) ve oda bilgisi endpoint'leri.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from syncwatch.config import settings
from syncwatch.exceptions import RoomNotFoundException
from syncwatch.schemas.protocol import PlayerStatePayload
from syncwatch.schemas.room import (
    LegacyRoomCreateResponse,
    RoomCreate,
    RoomCreateResponse,
    RoomResponse,
)
from syncwatch.services.room_registry import RoomRegistry, get_room_registry
from syncwatch.services.room_service import RoomService
from syncwatch.utils.logging_config import room_logger
from syncwatch.utils.rate_limit import rate_limit

router = APIRouter(tags=["Rooms"])


def get_room_service(
    request: Request,
    registry: Annotated[RoomRegistry, Depends(get_room_registry)],
) -> RoomService:
    return RoomService(registry, getattr(request.app.state, "http_client", None))


def _room_create_limit() -> int:
    return settings.ROOM_CREATE_RATE_LIMIT


@router.post(
    "/api/rooms",
    response_model=RoomCreateResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
@rate_limit(limit=_room_create_limit, window=60, identifier="create_room")
async def create_room(
    request: Request,
    room_data: RoomCreate,
    service: Annotated[RoomService, Depends(get_room_service)],
):
    """
    Video URL'sinden oda olustur.
    Video ID, baslik ve icebreaker'lar burada bir kez cozulur.
    """
    room = await service.create_room(room_data.url)
    room_logger.info("Room created via API", extra={"room_id": room.room_id})
    return RoomCreateResponse(
        room_id=room.room_id,
        video_id=room.video_id,
        video_title=room.video_title,
        icebreakers=room.icebreakers,
    )


@router.post("/create", response_model=LegacyRoomCreateResponse, response_model_by_alias=True)
@rate_limit(limit=_room_create_limit, window=60, identifier="create_room")
async def create_room_legacy(
    request: Request,
    room_data: RoomCreate,
    service: Annotated[RoomService, Depends(get_room_service)],
):
    """Eski istemciler icin: sadece ``{roomId}`` doner."""
    room = await service.create_room(room_data.url)
    return LegacyRoomCreateResponse(room_id=room.room_id)


@router.get("/api/rooms/{room_id}", response_model=RoomResponse, response_model_by_alias=True)
async def get_room(
    room_id: str,
    registry: Annotated[RoomRegistry, Depends(get_room_registry)],
):
    room = registry.get_room(room_id)
    if room is None:
        raise RoomNotFoundException(room_id, "Room not found")
    return RoomResponse(
        room_id=room.room_id,
        video_id=room.video_id,
        video_title=room.video_title,
        icebreakers=room.icebreakers,
        participant_count=room.participant_count,
        player_state=PlayerStatePayload.from_state(room.player_state),
    )
