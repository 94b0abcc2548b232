"""
Connection primitives: per-connection state, registry, health monitor.
"""

from relay_gateway.components.connection.connection import (
    Connection,
    SessionState,
    is_ws_connected,
)
from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.connection.heartbeat import HealthMonitor, handle_heartbeat

__all__ = [
    "Connection",
    "SessionState",
    "is_ws_connected",
    "ConnectionRegistry",
    "HealthMonitor",
    "handle_heartbeat",
]
