"""
WebSocket endpoint classes.

WebSocketEndpointBase runs the handshake and read loop; GroupChatEndpoint
implements the group session on top of it.
"""

from relay_gateway.components.endpoints.base import WebSocketEndpointBase
from relay_gateway.components.endpoints.group_chat import GroupChatEndpoint
from relay_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)

__all__ = [
    "WebSocketEndpointBase",
    "GroupChatEndpoint",
    "ConnectionLifecycleMixin",
    "MessageValidationMixin",
    "OriginValidationMixin",
]
