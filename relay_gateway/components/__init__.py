"""
Relay Gateway Components.

Organized by concern:
- core/       - Constants, close codes, errors, connection context
- connection/ - Per-connection state, registry, health monitor
- events/     - Wire message types and parsing
- auth/       - Bearer credential extraction and verification
- data/       - Group membership lookups
- endpoints/  - WebSocket endpoints (base, mixins, group chat)
- resilience/ - Retry with jitter

Commonly used symbols are re-exported here.
"""

from relay_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    validate_websocket_origin,
)
from relay_gateway.components.core.errors import (
    RelayError,
    AuthError,
    AccessDenied,
    ProtocolError,
    NotJoinedError,
    MessageTooLargeError,
    InternalError,
)
from relay_gateway.components.connection.connection import Connection, SessionState
from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.connection.heartbeat import HealthMonitor
from relay_gateway.components.events.types import REMOVAL_NOTICE, parse_inbound
from relay_gateway.components.auth.strategies import (
    JWTCredentialVerifier,
    extract_bearer_credential,
)
from relay_gateway.components.data.membership_repository import SqlMembershipOracle

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "validate_websocket_origin",
    "RelayError",
    "AuthError",
    "AccessDenied",
    "ProtocolError",
    "NotJoinedError",
    "MessageTooLargeError",
    "InternalError",
    "Connection",
    "SessionState",
    "ConnectionRegistry",
    "HealthMonitor",
    "REMOVAL_NOTICE",
    "parse_inbound",
    "JWTCredentialVerifier",
    "extract_bearer_credential",
    "SqlMembershipOracle",
]
