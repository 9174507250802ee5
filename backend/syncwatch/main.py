from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from syncwatch.config import settings
from syncwatch.routers import rooms_router, websocket_router
from syncwatch.services.room_registry import get_room_registry
from syncwatch.utils.logging_config import setup_logging, fastapi_logger
from syncwatch.error_handlers import register_exception_handlers
from syncwatch.middleware import RateLimitHeaderMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    fastapi_logger.info(f"Starting {settings.APP_NAME}")
    # Shared outbound client for oEmbed / Gemini lookups
    app.state.http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    registry = get_room_registry()
    registry.start_sweeper()
    fastapi_logger.info(
        f"Room sweeper started (empty room TTL {settings.ROOM_EMPTY_TTL_SECONDS:.0f}s)"
    )
    if settings.ALLOW_ADHOC_ROOMS:
        fastapi_logger.warning("Ad-hoc rooms enabled: clients may create rooms from the socket URL")
    yield
    # Shutdown
    fastapi_logger.info("Shutting down application")
    await registry.stop_sweeper()
    await app.state.http_client.aclose()
    fastapi_logger.info("HTTP client closed")


app = FastAPI(
    title=settings.APP_NAME,
    description="Watch-party relay: oda bazli YouTube oynatma senkronizasyonu",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate Limit Headers Middleware (must be added after CORS)
if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitHeaderMiddleware)

# Global Exception Handlers
register_exception_handlers(app)

# API Routers
app.include_router(rooms_router)
app.include_router(websocket_router)


# Health Check
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "relay": get_room_registry().stats()
    }


@app.get("/ready")
async def readiness_check():
    return {"status": "ready"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("syncwatch.main:app", host="0.0.0.0", port=8005, reload=True)
