from syncwatch.models.room import Room, PlayerState, PlayerStatus, ChatMessage

__all__ = ["Room", "PlayerState", "PlayerStatus", "ChatMessage"]
