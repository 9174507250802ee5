from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from syncwatch.schemas.protocol import PlayerStatePayload


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoomCreate(CamelModel):
    url: str = Field(..., min_length=1, max_length=2048)


class LegacyRoomCreateResponse(CamelModel):
    room_id: str


class RoomCreateResponse(CamelModel):
    room_id: str
    video_id: str
    video_title: str
    icebreakers: list[str] = []


class RoomResponse(CamelModel):
    room_id: str
    video_id: str
    video_title: str
    icebreakers: list[str] = []
    participant_count: int = 0
    player_state: PlayerStatePayload
