"""
Core definitions shared by every relay component.
"""

from relay_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    MSG_PING_PLAIN,
    MSG_PING_JSON,
    MSG_PONG_PLAIN,
    MSG_PONG_JSON,
    BEARER_PREFIX,
    DEFAULT_ALLOWED_ORIGINS,
    validate_websocket_origin,
)
from relay_gateway.components.core.context import ConnectionContext, sanitize_log_data
from relay_gateway.components.core.errors import (
    RelayError,
    AuthError,
    AccessDenied,
    ProtocolError,
    NotJoinedError,
    MessageTooLargeError,
    InternalError,
    UnauthenticatedConnectionError,
)

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
    "ConnectionContext",
    "sanitize_log_data",
    "RelayError",
    "AuthError",
    "AccessDenied",
    "ProtocolError",
    "NotJoinedError",
    "MessageTooLargeError",
    "InternalError",
    "UnauthenticatedConnectionError",
]
