"""
Wire message parsing and construction.
"""

from relay_gateway.components.events.types import (
    EVENT_JOIN_GROUP,
    EVENT_SEND_MESSAGE,
    VALID_EVENT_TYPES,
    REMOVAL_NOTICE,
    JoinGroup,
    SendMessage,
    Ping,
    Pong,
    InboundEvent,
    parse_inbound,
    delivered_frame,
    error_frame,
)

__all__ = [
    "EVENT_JOIN_GROUP",
    "EVENT_SEND_MESSAGE",
    "VALID_EVENT_TYPES",
    "REMOVAL_NOTICE",
    "JoinGroup",
    "SendMessage",
    "Ping",
    "Pong",
    "InboundEvent",
    "parse_inbound",
    "delivered_frame",
    "error_frame",
]
