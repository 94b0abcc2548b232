"""
Connection Lifecycle Management.

Admission into the registry and the single termination path shared by
normal close, health reclamation, eviction and shutdown.
"""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from shared.config.logging import audit_ws_connection, get_logger
from relay_gateway.components.core.constants import WSCloseCode

if TYPE_CHECKING:
    from relay_gateway.components.connection.connection import Connection
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.core.connection.stats import ConnectionStats

logger = get_logger(__name__)


class ConnectionLifecycle:
    """
    Admits and terminates connections.

    terminate() removes the registry entry first, so by the time a notice
    or close frame goes out no broadcast can select the connection any
    more. Whoever removes the entry owns the close; concurrent terminate
    calls for the same connection are no-ops.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        stats: "ConnectionStats",
        max_total_connections: int,
        endpoint: str = "/ws",
    ) -> None:
        self._registry = registry
        self._stats = stats
        self._max_total_connections = max_total_connections
        self._endpoint = endpoint
        self._accepting = True

    @property
    def accepting(self) -> bool:
        return self._accepting

    async def admit(self, conn: "Connection") -> bool:
        """
        Register an authenticated connection.

        Returns:
            False if the relay is full or shutting down.
        """
        if not self._accepting:
            return False
        added = await self._registry.add(conn, max_connections=self._max_total_connections)
        if not added:
            self._stats.record_capacity_rejection()
            logger.warning(
                "Connection limit reached",
                max_connections=self._max_total_connections,
            )
            return False
        self._stats.record_admitted()
        logger.debug("Connection admitted", handle=conn.handle, identity=conn.identity)
        return True

    async def terminate(
        self,
        conn: "Connection",
        code: int,
        reason: str,
        notice: dict[str, Any] | None = None,
        expected_group: str | None = None,
        audit_event: str | None = None,
    ) -> bool:
        """
        Remove a connection from the registry, optionally notify it, close it.

        Args:
            conn: Connection to terminate.
            code: WebSocket close code.
            reason: Close reason.
            notice: Frame sent after removal and before the close frame.
            expected_group: Only terminate if still bound to this group.
            audit_event: Security audit event type to record.

        Returns:
            True if this call terminated the connection.
        """
        removed = await self._registry.remove(conn, expected_group=expected_group)
        if not removed:
            return False

        if notice is not None:
            await conn.send_json(notice)
        await conn.close(code, reason)
        self._stats.record_closed()

        logger.info(
            "Connection terminated",
            handle=conn.handle,
            identity=conn.identity,
            group_id=conn.bound_group,
            code=int(code),
            reason=reason,
        )
        if audit_event is not None:
            audit_ws_connection(
                event_type=audit_event,
                endpoint=self._endpoint,
                identity=conn.identity,
                group_id=conn.bound_group,
                reason=reason,
                handle=conn.handle,
            )
        return True

    async def shutdown(self, reason: str = "Server shutting down") -> int:
        """
        Stop admitting and close every registered connection.

        Returns:
            Number of connections closed.
        """
        self._accepting = False
        connections = await self._registry.snapshot()
        results = await asyncio.gather(
            *(
                self.terminate(conn, WSCloseCode.GOING_AWAY, reason)
                for conn in connections
            ),
            return_exceptions=True,
        )
        closed = sum(1 for r in results if r is True)
        for r in results:
            if isinstance(r, Exception):
                logger.warning("Error closing connection on shutdown", error=str(r))
        logger.info("Closed connections on shutdown", count=closed)
        return closed
