import asyncio
from typing import Optional

import httpx

from syncwatch.exceptions import AppException
from syncwatch.models.room import Room
from syncwatch.services.icebreaker_service import DEFAULT_ICEBREAKERS, generate_icebreakers
from syncwatch.services.room_registry import RoomRegistry
from syncwatch.services.video_service import extract_video_id, fetch_video_title
from syncwatch.utils.logging_config import room_logger

FALLBACK_VIDEO_TITLE = "A YouTube Video"


class RoomService:
    """Room creation: resolve the video, fetch metadata once, register the room."""

    def __init__(self, registry: RoomRegistry, http_client: Optional[httpx.AsyncClient] = None):
        self.registry = registry
        self.http_client = http_client

    async def create_room(self, reference: str) -> Room:
        """
        Raises:
            InvalidVideoReferenceException: referans oynatilabilir bir videoya cozulmuyorsa
            ExternalServiceException: oEmbed erisilemezse
        """
        video_id = extract_video_id(reference)
        video_title = await fetch_video_title(video_id, self.http_client)
        icebreakers = await generate_icebreakers(video_title, self.http_client)
        return await self.registry.create_room(video_id, video_title, icebreakers)

    async def resolve_adhoc_metadata(self, room: Room) -> None:
        """Istemci tarafinda olusturulan oda icin baslik ve icebreaker'lari sonradan doldur."""
        room_logger.info("Starting metadata fetch", extra={"room_id": room.room_id, "video_id": room.video_id})
        try:
            title = await fetch_video_title(room.video_id, self.http_client)
        except AppException as e:
            room_logger.warning(
                "Could not resolve video title",
                extra={"room_id": room.room_id, "error": e.message}
            )
            title = FALLBACK_VIDEO_TITLE

        icebreakers = await generate_icebreakers(title, self.http_client) or list(DEFAULT_ICEBREAKERS)
        await self.registry.update_room_info(room.room_id, title, icebreakers)

    def schedule_adhoc_metadata(self, room: Room) -> asyncio.Task:
        return self.registry.spawn(self.resolve_adhoc_metadata(room), name=f"room-metadata-{room.room_id}")
