"""
WebSocket Endpoint Base Class.

Drives one client connection from handshake to close:
1. Extract and verify the bearer credential (reject the handshake on failure)
2. Accept, echoing the credential sub-protocol when one was used
3. Admit the connection into the registry
4. Read loop: size check, parse, liveness frames, then handle_event()
5. Terminate through the manager on any exit path
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from shared.config.logging import get_logger
from shared.infrastructure.correlation import correlation_id_var
from relay_gateway.components.auth.strategies import extract_bearer_credential
from relay_gateway.components.connection.connection import Connection
from relay_gateway.components.connection.heartbeat import handle_heartbeat
from relay_gateway.components.core.constants import WSCloseCode
from relay_gateway.components.core.context import ConnectionContext, sanitize_log_data
from relay_gateway.components.core.errors import (
    AccessDenied,
    AuthError,
    InternalError,
    MessageTooLargeError,
    ProtocolError,
    RelayError,
)
from relay_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)
from relay_gateway.components.events.types import InboundEvent, parse_inbound

if TYPE_CHECKING:
    from relay_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

# ASGI extension that lets the server answer the upgrade with a plain HTTP response
DENIAL_RESPONSE_EXTENSION = "websocket.http.response"


class WebSocketEndpointBase(
    MessageValidationMixin,
    OriginValidationMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for relay WebSocket endpoints.

    Subclasses implement handle_event() for the typed client events.
    Liveness frames (ping/pong) never reach handle_event().

    Usage:
        endpoint = GroupChatEndpoint(websocket, manager)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str = "/ws",
    ):
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name
        self.max_message_size = manager.max_message_size

        self.context = ConnectionContext.from_websocket(websocket, endpoint_name)
        self.connection: Connection | None = None
        self._subprotocol: str | None = None
        self._closed_waiter: asyncio.Future | None = None

    @abstractmethod
    async def handle_event(self, event: InboundEvent) -> bool:
        """
        Handle a parsed client event.

        Returns:
            False to end the session (the connection is already terminated).

        Raises:
            RelayError: Recoverable errors are answered, fatal ones end the session.
        """

    # =========================================================================
    # Entry point
    # =========================================================================

    async def run(self) -> None:
        """Run the complete connection lifecycle."""
        conn = await self.authenticate()
        if conn is None:
            return

        token = correlation_id_var.set(conn.handle)
        try:
            await self._serve(conn)
        finally:
            correlation_id_var.reset(token)

    async def _serve(self, conn: Connection) -> None:
        if not await self._accept(conn):
            return

        if not await self.manager.admit(conn):
            self.log_connect_rejected("CONNECT_REJECTED", "server_at_capacity")
            await conn.close(WSCloseCode.SERVER_OVERLOADED, "Server busy")
            return

        self.connection = conn
        self.log_connect()
        disconnect_reason = "session_ended"
        try:
            await self._message_loop(conn)
        except WebSocketDisconnect as e:
            disconnect_reason = f"client_disconnect:{e.code}"
        except Exception as e:
            disconnect_reason = "server_error"
            logger.error(
                "Unexpected error in session",
                handle=conn.handle,
                identifier=self.context.identifier,
                error=str(e),
                exc_info=True,
            )
            await self.manager.terminate(conn, WSCloseCode.SERVER_ERROR, "Internal error")
        finally:
            if self._closed_waiter is not None:
                self._closed_waiter.cancel()
            # No-op when something else (eviction, health monitor) already terminated it
            await self.manager.terminate(conn, WSCloseCode.NORMAL, "Session ended")
            self.log_disconnect(disconnect_reason)

    # =========================================================================
    # Handshake
    # =========================================================================

    async def authenticate(self) -> Connection | None:
        """
        Verify the handshake credential.

        Returns:
            An authenticated, not yet accepted Connection, or None if the
            handshake was rejected.
        """
        if not self.validate_origin():
            self.log_connect_rejected("AUTH_FAILED", "invalid_origin")
            await self._reject_handshake(403, WSCloseCode.FORBIDDEN, "Origin not allowed")
            return None

        try:
            credential = extract_bearer_credential(self.websocket)
            identity = await self._verify(credential.token)
        except AuthError as e:
            self.manager.stats.record_auth_failure()
            self.log_connect_rejected("AUTH_FAILED", e.detail or "auth_failed")
            await self._reject_handshake(401, WSCloseCode.AUTH_FAILED, e.client_message)
            return None

        conn = Connection(self.websocket, send_timeout=self.manager.send_timeout)
        conn.authenticate(identity)
        self._subprotocol = credential.subprotocol
        self.context.handle = conn.handle
        self.context.identity = identity
        return conn

    async def _verify(self, token: str) -> str:
        """Run the verifier; its own failures surface to the client as AuthError."""
        try:
            return await self.manager.credential_verifier.verify(token)
        except AuthError:
            raise
        except Exception as e:
            err = InternalError("credential_verifier", str(e))
            logger.error(
                "Credential verifier failed",
                component=err.component,
                error=err.detail,
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise AuthError(detail="verifier_error") from e

    async def _reject_handshake(self, status_code: int, close_code: int, message: str) -> None:
        """
        Refuse the upgrade. Uses an HTTP denial response when the server
        supports it, otherwise closes with close_code before accepting.
        """
        if DENIAL_RESPONSE_EXTENSION in (self.websocket.scope.get("extensions") or {}):
            await self.websocket.send_denial_response(
                JSONResponse({"error": message}, status_code=status_code)
            )
        else:
            await self.websocket.close(code=close_code, reason=message)

    async def _accept(self, conn: Connection) -> bool:
        try:
            await asyncio.wait_for(
                self.websocket.accept(subprotocol=self._subprotocol),
                timeout=self.manager.accept_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning("WebSocket accept timed out", handle=conn.handle)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("WebSocket accept failed", handle=conn.handle, error=str(e))
        self.log_connect_rejected("CONNECT_REJECTED", "accept_failed")
        return False

    # =========================================================================
    # Read loop
    # =========================================================================

    async def _message_loop(self, conn: Connection) -> None:
        """
        Read frames until the client leaves or the connection is terminated.

        Raises:
            WebSocketDisconnect: When the client closes the connection.
        """
        self._closed_waiter = asyncio.ensure_future(conn.wait_closed())
        while not conn.closed:
            data = ""
            try:
                data = await self._receive()
                if data is None:
                    return
                self.validate_message_size(data)
                event = parse_inbound(data)
                if await handle_heartbeat(conn, event):
                    continue
                if not await self.handle_event(event):
                    return
            except RelayError as e:
                if not await self._handle_error(conn, e, data):
                    return

    async def _receive(self) -> str | None:
        """
        Wait for the next frame or for the connection to be terminated.

        Returns:
            The frame text, or None if the connection was closed from our side.

        Raises:
            WebSocketDisconnect: When the client closes the connection.
            ProtocolError: For a binary frame that is not valid UTF-8.
        """
        receive_task = asyncio.ensure_future(self.websocket.receive())
        done, _ = await asyncio.wait(
            {receive_task, self._closed_waiter},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if receive_task not in done:
            receive_task.cancel()
            return None

        try:
            message = receive_task.result()
        except RuntimeError:
            # Starlette raises once the transport is gone
            raise WebSocketDisconnect(code=WSCloseCode.GOING_AWAY)

        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", WSCloseCode.NORMAL))

        text = message.get("text")
        if text is not None:
            return text
        raw = message.get("bytes") or b""
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError(detail="binary_not_utf8")

    async def _handle_error(self, conn: Connection, error: RelayError, data: str) -> bool:
        """
        Answer or terminate for a RelayError.

        Returns:
            True to keep reading, False if the session ended.
        """
        if not error.is_fatal:
            if isinstance(error, ProtocolError):
                self.manager.stats.record_protocol_error()
            logger.info(
                "Rejected client message",
                handle=conn.handle,
                error=error.client_message,
                detail=error.detail,
                data=sanitize_log_data(data),
            )
            await conn.send_json(error.to_payload())
            return True

        await self.manager.terminate(
            conn,
            error.close_code,
            error.client_message,
            notice=error.to_payload(),
            audit_event=_AUDIT_EVENTS.get(type(error)),
        )
        return False


_AUDIT_EVENTS: dict[type[RelayError], str] = {
    AccessDenied: "ACCESS_DENIED",
    MessageTooLargeError: "MESSAGE_TOO_BIG",
}
