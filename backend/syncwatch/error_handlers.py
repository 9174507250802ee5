"""
Relay error handling.

HTTP errors share one JSON body; socket errors become ``error`` frames
followed, for join rejections, by a close code.
"""

from traceback import format_exc
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from syncwatch.config import settings
from syncwatch.exceptions import AppException, ErrorCode
from syncwatch.schemas.protocol import ErrorMessage
from syncwatch.utils.logging_config import fastapi_logger, websocket_logger

HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
}


def error_body(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """``{success, error, message, status_code[, details]}``"""
    body: dict[str, Any] = {
        "success": False,
        "error": code.value,
        "message": message,
        "status_code": status_code,
    }
    if details:
        body["details"] = details
    return body


def _request_context(request: Request) -> dict[str, Any]:
    return {
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else None,
    }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        fastapi_logger.warning(
            "Request rejected",
            extra={**_request_context(request), "error_code": exc.code.value, "error": exc.message},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.status_code, exc.details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR)
        fastapi_logger.warning(
            "HTTP error",
            extra={**_request_context(request), "status_code": exc.status_code, "error": str(exc.detail)},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, str(exc.detail) if exc.detail else "HTTP error", exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # loc[0] is "body" / "query"
        errors = [
            {"field": ".".join(str(loc) for loc in error["loc"][1:]), "message": error["msg"]}
            for error in exc.errors()
        ]
        fastapi_logger.info("Invalid request", extra={**_request_context(request), "validation_errors": errors})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                ErrorCode.VALIDATION_ERROR,
                "Validation error, please check your input",
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                {"validation_errors": errors},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Beklenmeyen hata; detaylar yalnizca DEBUG modunda doner."""
        fastapi_logger.opt(exception=exc).error("Unhandled error", extra=_request_context(request))
        if settings.DEBUG:
            message = f"{type(exc).__name__}: {exc}"
            details = {"traceback": format_exc()}
        else:
            message = "An unexpected error occurred. Please try again later."
            details = None
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                ErrorCode.INTERNAL_SERVER_ERROR, message, status.HTTP_500_INTERNAL_SERVER_ERROR, details
            ),
        )


# ==================== WebSocket Error Handling ====================

class WebSocketErrorHandler:
    """Error frames and close codes for relay sockets."""

    @staticmethod
    async def handle_connection_error(
        websocket: WebSocket,
        error: Exception,
        reason: str = "Connection error",
        close_code: int = 1011,
    ) -> None:
        """Send ``error`` (for AppException) then close with ``close_code``."""
        websocket_logger.warning(
            "Closing relay socket",
            extra={"reason": reason, "close_code": close_code, "error": str(error)},
        )
        if isinstance(error, AppException):
            await WebSocketErrorHandler.send_error_message(
                websocket, error.message, error.code.value, error.details
            )
        try:
            # close reasons are limited to 123 bytes
            await websocket.close(code=close_code, reason=reason[:123])
        except Exception as close_error:
            websocket_logger.error("Failed to close websocket", extra={"error": str(close_error)})

    @staticmethod
    async def send_error_message(
        websocket: WebSocket,
        message: str,
        error_code: str = ErrorCode.WS_INVALID_MESSAGE.value,
        details: Optional[dict[str, Any]] = None,
    ) -> bool:
        try:
            await websocket.send_json(
                ErrorMessage(code=error_code, message=message, details=details or None).to_wire()
            )
            return True
        except Exception as e:
            websocket_logger.warning("Could not send error frame", extra={"error": str(e), "failed_message": message})
            return False

    @staticmethod
    def log_websocket_error(
        error: Exception,
        room_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        message_type: Optional[str] = None,
    ) -> None:
        websocket_logger.warning(
            "WebSocket error",
            extra={
                "error_type": type(error).__name__,
                "error": str(error),
                "room_id": room_id,
                "connection_id": connection_id,
                "msg_type": message_type,
            },
        )
