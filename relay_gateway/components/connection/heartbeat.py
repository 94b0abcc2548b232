"""
Health Monitor for the relay.

Probes every registered connection on a fixed period and reclaims the
ones that did not answer the previous probe. A connection must answer at
least one probe per two ticks; the second silent tick terminates it.

Also answers client keepalive pings, which do not count as probe answers.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import (
    MSG_PING_JSON,
    MSG_PONG_JSON,
    WSCloseCode,
    WSConstants,
)
from relay_gateway.components.events.types import InboundEvent, Ping, Pong

if TYPE_CHECKING:
    from relay_gateway.components.connection.connection import Connection
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.core.connection.lifecycle import ConnectionLifecycle
    from relay_gateway.core.connection.stats import ConnectionStats

logger = get_logger(__name__)

HEALTH_CHECK_FAILED_REASON = "Health check failed"


class HealthMonitor:
    """
    Periodic liveness probing.

    Each tick, for every registered connection:
    - alive is False (no answer since the last probe): terminate it
    - otherwise: set alive = False and send a probe

    Usage:
        monitor = HealthMonitor(registry, lifecycle, interval=30.0)
        task = asyncio.create_task(monitor.run(), name="health_monitor")
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        lifecycle: "ConnectionLifecycle",
        interval: float = WSConstants.HEALTH_CHECK_INTERVAL,
        stats: "ConnectionStats | None" = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._registry = registry
        self._lifecycle = lifecycle
        self._interval = interval
        self._stats = stats
        self._ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    async def tick(self) -> int:
        """
        Run one probe cycle.

        Returns:
            Number of connections reclaimed this tick.
        """
        self._ticks += 1
        connections = await self._registry.snapshot()

        stale: list[Connection] = []
        probed: list[Connection] = []
        for conn in connections:
            if conn.alive:
                # Cleared before sending so an answer racing the send still counts
                conn.alive = False
                probed.append(conn)
            else:
                stale.append(conn)

        results = await asyncio.gather(
            *(self._reclaim(conn) for conn in stale),
            *(conn.send_text(MSG_PING_JSON) for conn in probed),
            return_exceptions=True,
        )
        reclaimed = sum(1 for r in results[: len(stale)] if r is True)

        for r in results:
            if isinstance(r, Exception):
                logger.error("Health probe error", error=str(r), error_type=type(r).__name__)

        if reclaimed:
            logger.info(
                "Reclaimed unresponsive connections",
                count=reclaimed,
                probed=len(probed),
            )
        if self._stats is not None:
            self._stats.record_health_tick(probed=len(probed), reclaimed=reclaimed)
        return reclaimed

    async def _reclaim(self, conn: "Connection") -> bool:
        logger.debug("Connection missed health probe", handle=conn.handle)
        return await self._lifecycle.terminate(
            conn,
            WSCloseCode.GOING_AWAY,
            HEALTH_CHECK_FAILED_REASON,
            audit_event="HEALTH_TIMEOUT",
        )

    async def run(self) -> None:
        """Tick forever until cancelled."""
        logger.info("Health monitor started", interval=self._interval)
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in health monitor", error=str(e), exc_info=True)
        logger.info("Health monitor stopped", ticks=self._ticks)


async def handle_heartbeat(conn: "Connection", event: InboundEvent) -> bool:
    """
    Handle liveness frames.

    A pong answers the server's probe and marks the connection alive.
    A client ping is answered with pong and does not affect liveness.

    Returns:
        True if the event was a liveness frame and was handled.
    """
    if isinstance(event, Pong):
        conn.mark_alive()
        return True
    if isinstance(event, Ping):
        await conn.send_text(MSG_PONG_JSON)
        return True
    return False
