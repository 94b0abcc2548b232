"""
Relay Gateway Constants.

Centralized constants with the rationale for each value.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "MSG_PING_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG_PLAIN",
    "MSG_PONG_JSON",
    "BEARER_PREFIX",
    "DEFAULT_ALLOWED_ORIGINS",
    "validate_websocket_origin",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the relay.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or connection failed its health probe
    PROTOCOL_ERROR = 1002  # Protocol error
    UNSUPPORTED_DATA = 1003  # Received data type not supported
    POLICY_VIOLATION = 1008  # Removed from the group
    MESSAGE_TOO_BIG = 1009  # Frame larger than ws_max_message_size
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Connection limit reached or shutting down

    # Custom application codes (4000-4999)
    AUTH_FAILED = 4001  # Missing, malformed, expired or rejected credential
    FORBIDDEN = 4003  # Not a member of the requested group, or origin not allowed


class WSConstants:
    """
    Relay operational constants.

    These are defaults used when settings are not available. At runtime the
    ConnectionManager reads shared.config.settings, which can override the
    configurable ones via environment variables.

    Configurable via settings.py:
    - HEALTH_CHECK_INTERVAL -> settings.ws_health_check_interval
    - SEND_TIMEOUT -> settings.ws_send_timeout
    - MEMBERSHIP_LOOKUP_TIMEOUT -> settings.ws_membership_lookup_timeout
    - WS_ACCEPT_TIMEOUT -> settings.ws_accept_timeout
    """

    # HEALTH_CHECK_INTERVAL: 30 seconds
    # Rationale: A connection must answer one probe per two ticks, so a dead
    # peer is reclaimed within 60 seconds. Shorter periods cost a frame per
    # connection per tick.
    HEALTH_CHECK_INTERVAL: Final[float] = 30.0

    # SEND_TIMEOUT: 5 seconds
    # Rationale: A recipient whose socket buffer stays full for 5 seconds is
    # treated as failed for that delivery; other recipients are unaffected.
    SEND_TIMEOUT: Final[float] = 5.0

    # MEMBERSHIP_LOOKUP_TIMEOUT: 2 seconds
    # Rationale: Membership lookups are single-row queries (<10ms typical).
    # A slower store is treated as unavailable and the join is denied.
    MEMBERSHIP_LOOKUP_TIMEOUT: Final[float] = 2.0

    # WS_ACCEPT_TIMEOUT: 5 seconds
    # Rationale: WebSocket handshake should complete within TCP timeout.
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # MAX_GROUP_ID_LENGTH: 64
    # Rationale: Matches the group id column width; longer ids cannot exist.
    MAX_GROUP_ID_LENGTH: Final[int] = 64

    # CLOSE_REASON_MAX_BYTES: 123
    # Rationale: RFC 6455 limits the close reason to 123 bytes of UTF-8.
    CLOSE_REASON_MAX_BYTES: Final[int] = 123


# Liveness protocol frames
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PING_JSON: Final[str] = '{"type":"ping"}'
MSG_PONG_PLAIN: Final[str] = "pong"
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'

# Credential prefix carried by every handshake side channel
BEARER_PREFIX: Final[str] = "Bearer "


# Default development origins
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:3000", "http://localhost:5173",
    "http://127.0.0.1:3000", "http://127.0.0.1:5173",
)


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    Missing origins are tolerated in development only (CLI clients and
    test tools do not send one).

    Args:
        origin: The Origin header value, or None if not present.
        settings: Settings object with environment and allowed_origins attributes.

    Returns:
        True if origin is allowed, False otherwise.
    """
    allowed_origins_str = getattr(settings, "allowed_origins", None)
    if allowed_origins_str:
        allowed = [o.strip() for o in allowed_origins_str.split(",") if o.strip()]
    else:
        allowed = list(DEFAULT_ALLOWED_ORIGINS)

    if not origin:
        return getattr(settings, "environment", "production") == "development"

    if origin in allowed:
        return True

    # Development convenience: accept any localhost port
    if getattr(settings, "environment", "production") == "development":
        return origin.startswith(("http://localhost:", "http://127.0.0.1:"))
    return False
