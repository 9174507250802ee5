from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from pydantic import field_validator
import sys


class Settings(BaseSettings):
    # App
    APP_NAME: str = "SyncWatch"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"  # TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]

    # Playback sync
    DRIFT_THRESHOLD_SECONDS: float = 1.5
    ECHO_SUPPRESSION_GRACE_MS: int = 150
    PLAYER_READY_POLL_INTERVAL: float = 0.1

    # Room lifecycle
    ROOM_EMPTY_TTL_SECONDS: float = 300.0  # bos oda 5 dakika sonra silinir
    ROOM_SWEEP_INTERVAL_SECONDS: float = 30.0
    ALLOW_ADHOC_ROOMS: bool = False  # /ws/{room_id}?v=<video_id> ile oda olusturma

    # Relay connections
    SEND_QUEUE_SIZE: int = 256
    SEND_TIMEOUT_SECONDS: float = 5.0

    # External services
    YOUTUBE_OEMBED_URL: str = "https://www.youtube.com/oembed"
    GEMINI_API_KEY: str = ""
    GEMINI_API_URL: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        "gemini-1.5-flash-latest:generateContent"
    )
    HTTP_TIMEOUT_SECONDS: float = 20.0

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    ROOM_CREATE_RATE_LIMIT: int = 10  # per minute per client
    WS_MESSAGE_LIMIT: int = 300  # per minute per connection
    WS_BURST_LIMIT: int = 30  # per second per connection

    # Client reconnect
    RECONNECT_INITIAL_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator(
        "DRIFT_THRESHOLD_SECONDS",
        "PLAYER_READY_POLL_INTERVAL",
        "ROOM_SWEEP_INTERVAL_SECONDS",
        "SEND_TIMEOUT_SECONDS",
        "HTTP_TIMEOUT_SECONDS",
        "RECONNECT_INITIAL_DELAY",
        "RECONNECT_MAX_DELAY",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("ECHO_SUPPRESSION_GRACE_MS", "SEND_QUEUE_SIZE")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("ROOM_EMPTY_TTL_SECONDS")
    @classmethod
    def validate_ttl(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("GEMINI_API_KEY")
    @classmethod
    def warn_missing_gemini_key(cls, v: str) -> str:
        """Icebreakers fall back to a static list when no key is configured."""
        if not v:
            import warnings
            warnings.warn(
                "GEMINI_API_KEY not set, rooms will use the default icebreakers.",
                RuntimeWarning,
                stacklevel=2
            )
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Exits the process if configuration is invalid.
    """
    try:
        return Settings()
    except Exception as e:
        print(f"\n{'='*70}")
        print(f"CONFIGURATION ERROR: {e}")
        print(f"{'='*70}\n")
        sys.exit(1)


settings = get_settings()
