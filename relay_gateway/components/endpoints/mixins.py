"""
WebSocket Endpoint Mixins.

Each mixin handles a single concern for WebSocket endpoints.

Mixins:
    MessageValidationMixin: Inbound frame size check
    OriginValidationMixin: WebSocket origin header validation
    ConnectionLifecycleMixin: Connect/disconnect/reject logging and auditing

Usage:
    class MyEndpoint(MessageValidationMixin, OriginValidationMixin, WebSocketEndpointBase):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from shared.config.logging import get_logger
from shared.config.settings import settings
from relay_gateway.components.core.constants import validate_websocket_origin
from relay_gateway.components.core.errors import MessageTooLargeError

if TYPE_CHECKING:
    from relay_gateway.components.core.context import ConnectionContext

logger = get_logger(__name__)


class HasWebSocket(Protocol):
    """Protocol for classes with websocket attribute."""

    websocket: WebSocket
    endpoint_name: str
    context: "ConnectionContext"
    max_message_size: int


class MessageValidationMixin:
    """
    Mixin for inbound frame validation.

    Requires:
        - self.endpoint_name: str
        - self.context: ConnectionContext
        - self.max_message_size: int
    """

    def validate_message_size(self: HasWebSocket, data: str) -> None:
        """
        The limit is in bytes of the UTF-8 encoded frame.

        Raises:
            MessageTooLargeError: If data exceeds the configured limit.
        """
        size = len(data.encode("utf-8"))
        if size > self.max_message_size:
            logger.warning(
                "Message size exceeded limit",
                endpoint=self.endpoint_name,
                identifier=self.context.identifier,
                size=size,
                max_size=self.max_message_size,
            )
            raise MessageTooLargeError(detail=f"size={size}")


class OriginValidationMixin:
    """Mixin providing WebSocket origin validation."""

    def validate_origin(self: HasWebSocket) -> bool:
        origin = self.websocket.headers.get("origin")
        return validate_websocket_origin(origin, settings)


class ConnectionLifecycleMixin:
    """
    Mixin for connection lifecycle logging.

    Every event is written both to the module logger and the security
    audit log through the connection context.
    """

    def log_connect(self: HasWebSocket) -> None:
        logger.info("Client connected", **self.context.to_audit_dict("CONNECT"))
        self.context.audit("CONNECT")

    def log_disconnect(self: HasWebSocket, reason: str = "client_disconnect") -> None:
        logger.info(
            "Client disconnected",
            **self.context.to_audit_dict("DISCONNECT", reason=reason),
        )
        self.context.audit("DISCONNECT", reason=reason)

    def log_connect_rejected(self: HasWebSocket, event_type: str, reason: str) -> None:
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            identifier=self.context.identifier,
            event_type=event_type,
            reason=reason,
        )
        self.context.audit(event_type, reason=reason)


__all__ = [
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    "HasWebSocket",
]
