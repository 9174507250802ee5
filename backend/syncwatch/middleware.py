"""
Copies the room-creation quota computed by ``rate_limit`` onto the response.
"""
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

RATE_LIMIT_HEADERS = {
    "limit": "X-RateLimit-Limit",
    "remaining": "X-RateLimit-Remaining",
    "reset": "X-RateLimit-Reset",
}


class RateLimitHeaderMiddleware(BaseHTTPMiddleware):
    """Only requests that went through the decorator carry ``rate_limit_info``."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        info = getattr(request.state, "rate_limit_info", None)
        if info:
            for key, header in RATE_LIMIT_HEADERS.items():
                response.headers.setdefault(header, str(info.get(key, 0)))

        return response
