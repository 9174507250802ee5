from syncwatch.client.engine import EchoSuppressor, PlayerReadiness, SyncEngine
from syncwatch.client.events import LinkState
from syncwatch.client.player import HeadlessPlayer, MediaPlayer, wait_until_ready
from syncwatch.client.session import SyncEngineSession, WebSocketRelayLink, build_room_url

__all__ = [
    "EchoSuppressor",
    "PlayerReadiness",
    "SyncEngine",
    "LinkState",
    "HeadlessPlayer",
    "MediaPlayer",
    "wait_until_ready",
    "SyncEngineSession",
    "WebSocketRelayLink",
    "build_room_url",
]
