"""
Per-connection state.

A Connection wraps one accepted WebSocket together with the identity it
authenticated as, the group it is bound to and its liveness flag. Writes
are serialized by a per-connection lock; close() is idempotent and wakes
anything waiting on the connection.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from enum import Enum
from typing import Any, TYPE_CHECKING

from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import WSConstants
from relay_gateway.components.core.errors import UnauthenticatedConnectionError

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette only exposes CONNECTING, CONNECTED and DISCONNECTED, so a
    connection may still appear connected briefly after the peer left.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    IDLE = "idle"
    JOINED = "joined"
    TERMINATED = "terminated"


class Connection:
    """
    One client connection.

    identity is set exactly once by authenticate(); reading it before that
    raises UnauthenticatedConnectionError. bound_group is only changed by
    the registry so the group index never disagrees with it.
    """

    def __init__(
        self,
        websocket: "WebSocket",
        send_timeout: float = WSConstants.SEND_TIMEOUT,
        handle: str | None = None,
    ) -> None:
        self.handle = handle or uuid.uuid4().hex
        self.websocket = websocket
        self.bound_group: str | None = None
        self.alive = True
        self.state = SessionState.UNAUTHENTICATED
        self.connected_at = time.time()

        self._identity: str | None = None
        self._send_timeout = send_timeout
        self._send_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"<Connection handle={self.handle[:8]} identity={self._identity!r} "
            f"group={self.bound_group!r} state={self.state.value}>"
        )

    # =========================================================================
    # Authentication
    # =========================================================================

    @property
    def authenticated(self) -> bool:
        return self._identity is not None

    @property
    def identity(self) -> str:
        if self._identity is None:
            raise UnauthenticatedConnectionError(
                f"Connection {self.handle} used before authentication"
            )
        return self._identity

    def authenticate(self, identity: str) -> None:
        """Record the verified identity. Can only happen once."""
        if self._identity is not None:
            raise RuntimeError(f"Connection {self.handle} is already authenticated")
        if not identity:
            raise ValueError("identity must be a non-empty string")
        self._identity = str(identity)
        self.state = SessionState.IDLE

    def require_authenticated(self) -> None:
        """Fail loudly if an authenticated-only path is reached too early."""
        if self._identity is None:
            raise UnauthenticatedConnectionError(
                f"Connection {self.handle} used before authentication"
            )

    # =========================================================================
    # Liveness
    # =========================================================================

    def mark_alive(self) -> None:
        """Record a probe response."""
        self.alive = True

    # =========================================================================
    # Sending
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def send_json(self, payload: Any) -> bool:
        """
        Serialize and send a JSON text frame.

        Returns:
            True if the frame was handed to the transport, False otherwise.
        """
        return await self.send_text(json.dumps(payload, ensure_ascii=False))

    async def send_text(self, text: str) -> bool:
        """
        Send a text frame, serialized with any other send on this connection.

        Never raises for transport failures: a failed or timed-out send
        returns False and the caller decides what to do with the connection.
        """
        async with self._send_lock:
            if self.closed or not is_ws_connected(self.websocket):
                return False
            try:
                await asyncio.wait_for(
                    self.websocket.send_text(text),
                    timeout=self._send_timeout,
                )
                return True
            except asyncio.TimeoutError:
                logger.warning(
                    "Send timed out",
                    handle=self.handle,
                    timeout=self._send_timeout,
                )
                return False
            except (WebSocketDisconnect, ConnectionError, RuntimeError, OSError) as e:
                # Peer went away; the read loop or health monitor cleans up
                logger.debug(
                    "Send failed",
                    handle=self.handle,
                    error=type(e).__name__,
                )
                return False

    # =========================================================================
    # Closing
    # =========================================================================

    async def close(self, code: int, reason: str = "") -> bool:
        """
        Close the transport once.

        Returns:
            True if this call closed the connection, False if it was already closed.
        """
        if self._closed.is_set():
            return False
        self._closed.set()
        self.state = SessionState.TERMINATED

        reason = _truncate_reason(reason)
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return True
        try:
            await self.websocket.close(code=code, reason=reason)
        except (WebSocketDisconnect, ConnectionError, RuntimeError, OSError) as e:
            logger.debug(
                "Close on an already closed transport",
                handle=self.handle,
                error=type(e).__name__,
            )
        return True


def _truncate_reason(reason: str) -> str:
    encoded = reason.encode("utf-8")
    if len(encoded) <= WSConstants.CLOSE_REASON_MAX_BYTES:
        return reason
    return encoded[: WSConstants.CLOSE_REASON_MAX_BYTES].decode("utf-8", errors="ignore")
