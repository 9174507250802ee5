"""
Custom Exception Classes for SyncWatch

Bu modul, relay ve sync engine tarafinda kullanilan exception siniflarini icerir.
Her exception sinifi tek bir oda veya baglantiya ait bir hata durumunu temsil eder;
hicbiri process icin fatal degildir.
"""

from typing import Any, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standart hata kodlari - tutarli error response'lar icin"""

    # Room (ROOM_xxx)
    ROOM_NOT_FOUND = "ROOM_001"
    ROOM_VIDEO_MISMATCH = "ROOM_002"

    # Video references (VIDEO_xxx)
    INVALID_VIDEO_REFERENCE = "VIDEO_001"

    # Media player backend (PLAYER_xxx)
    PLAYER_BACKEND_UNAVAILABLE = "PLAYER_001"

    # WebSocket (WS_xxx)
    WS_CONNECTION_FAILED = "WS_001"
    WS_INVALID_MESSAGE = "WS_002"
    WS_SEND_FAILED = "WS_005"
    WS_TRANSPORT_LOST = "WS_006"

    # Validation (VAL_xxx)
    VALIDATION_ERROR = "VAL_001"
    NOT_FOUND = "VAL_002"

    # External Services (EXT_xxx)
    EXTERNAL_SERVICE_ERROR = "EXT_001"

    # General (GEN_xxx)
    INTERNAL_SERVER_ERROR = "GEN_001"
    SERVICE_UNAVAILABLE = "GEN_002"
    RATE_LIMIT_EXCEEDED = "GEN_003"


class AppException(Exception):
    """
    Base exception class for all application errors.

    Tum custom exception'lar bu siniftan turetilmelidir.

    Attributes:
        message: Kullaniciya gosterilecek hata mesaji
        code: Hata kodu (ErrorCode enum)
        status_code: HTTP status code
        details: Ek hata detaylari (opsiyonel)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Exception'i dict formatina donusturur (API response icin)"""
        result = {
            "error": self.code.value,
            "message": self.message,
            "status_code": self.status_code,
        }
        if self.details:
            result["details"] = self.details
        return result


# ==================== Room Exceptions ====================

class RoomException(AppException):
    """Genel oda hatasi"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.ROOM_NOT_FOUND,
        status_code: int = 404,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code, details)


class RoomNotFoundException(RoomException):
    """Oda bulunamadi - o baglanti denemesi icin terminal"""

    def __init__(self, room_id: str | None = None, message: str = "Failed to connect: room not found"):
        super().__init__(
            message,
            ErrorCode.ROOM_NOT_FOUND,
            404,
            {"room_id": room_id} if room_id else None,
        )
        self.room_id = room_id


class RoomVideoMismatchException(RoomException):
    """Oda zaten baska bir videoya bagli"""

    def __init__(self, room_id: str, video_id: str):
        super().__init__(
            "Room is already bound to a different video",
            ErrorCode.ROOM_VIDEO_MISMATCH,
            409,
            {"room_id": room_id, "video_id": video_id},
        )


# ==================== Video Exceptions ====================

class InvalidVideoReferenceException(AppException):
    """Girilen URL/ID oynatilabilir bir videoya cozulmuyor - kullanici tekrar deneyebilir"""

    def __init__(self, reference: str, reason: str = "Invalid or unsupported YouTube URL"):
        super().__init__(
            reason,
            ErrorCode.INVALID_VIDEO_REFERENCE,
            400,
            {"reference": reference},
        )


# ==================== Player Exceptions ====================

class PlayerBackendUnavailableException(AppException):
    """Player backend henuz hazir degil - sessizce tekrar denenir"""

    def __init__(self, message: str = "Media player backend is not ready yet"):
        super().__init__(message, ErrorCode.PLAYER_BACKEND_UNAVAILABLE, 503)


# ==================== WebSocket Exceptions ====================

class WebSocketException(AppException):
    """Genel WebSocket hatasi"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.WS_CONNECTION_FAILED,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, 1000, details)


class TransportLostException(WebSocketException):
    """Relay baglantisi koptu - yeniden baglanip join ile state tekrar alinmali"""

    def __init__(self, reason: str = "Connection to relay lost", close_code: int | None = None):
        super().__init__(
            reason,
            ErrorCode.WS_TRANSPORT_LOST,
            {"close_code": close_code} if close_code is not None else None,
        )
        self.close_code = close_code


class WebSocketSendException(WebSocketException):
    """WebSocket mesaj gonderme hatasi"""

    def __init__(self, recipient: str, reason: str = "Unknown"):
        super().__init__(
            f"Failed to deliver message to {recipient}",
            ErrorCode.WS_SEND_FAILED,
            {"recipient": recipient, "reason": reason},
        )


class WebSocketInvalidMessageException(WebSocketException):
    """Gecersiz WebSocket mesaji"""

    def __init__(self, reason: str = "Invalid message format"):
        super().__init__(
            f"Invalid message: {reason}",
            ErrorCode.WS_INVALID_MESSAGE,
            {"reason": reason},
        )


# ==================== Validation Exceptions ====================

class ValidationException(AppException):
    """Genel dogrulama hatasi"""

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)


# ==================== External Service Exceptions ====================

class ExternalServiceException(AppException):
    """Genel dis servis hatasi"""

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[dict[str, Any]] = None,
    ):
        full_message = f"{service}: {message}"
        all_details = {"service": service}
        if details:
            all_details.update(details)
        super().__init__(full_message, ErrorCode.EXTERNAL_SERVICE_ERROR, 502, all_details)


class RateLimitExceededException(AppException):
    """Istek limiti asildi"""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, ErrorCode.RATE_LIMIT_EXCEEDED, 429)
