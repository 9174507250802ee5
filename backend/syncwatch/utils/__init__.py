from syncwatch.utils.rate_limit import (
    rate_limit,
    limiter,
    check_websocket_rate_limit,
    cleanup_websocket_rate_limit,
    get_client_identifier,
)

__all__ = [
    "rate_limit", "limiter",
    "check_websocket_rate_limit", "cleanup_websocket_rate_limit",
    "get_client_identifier",
]
