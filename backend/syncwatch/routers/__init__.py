from syncwatch.routers.rooms import router as rooms_router
from syncwatch.routers.websocket import router as websocket_router

__all__ = ["rooms_router", "websocket_router"]
