"""
Connection Statistics.

Counters for the relay's lifecycle events, combined with registry counts
for the health endpoints. All updates happen on the event loop thread.
"""

from __future__ import annotations

import time
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionRegistry


class ConnectionStats:
    """
    Aggregates relay counters and registry structure counts.

    Usage:
        stats = ConnectionStats(registry, max_total_connections=1000)
        stats.record_admitted()
        stats.get_stats()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        max_total_connections: int,
    ) -> None:
        self._registry = registry
        self._max_total_connections = max_total_connections
        self._started_at = time.time()

        self.connections_admitted = 0
        self.connections_closed = 0
        self.auth_failures = 0
        self.capacity_rejections = 0
        self.joins = 0
        self.joins_denied = 0
        self.membership_errors = 0
        self.protocol_errors = 0
        self.broadcasts = 0
        self.deliveries = 0
        self.delivery_failures = 0
        self.evictions = 0
        self.health_ticks = 0
        self.health_reclaimed = 0

    def record_admitted(self) -> None:
        self.connections_admitted += 1

    def record_closed(self) -> None:
        self.connections_closed += 1

    def record_auth_failure(self) -> None:
        self.auth_failures += 1

    def record_capacity_rejection(self) -> None:
        self.capacity_rejections += 1

    def record_join(self, allowed: bool) -> None:
        if allowed:
            self.joins += 1
        else:
            self.joins_denied += 1

    def record_membership_error(self) -> None:
        self.membership_errors += 1

    def record_protocol_error(self) -> None:
        self.protocol_errors += 1

    def record_broadcast(self, delivered: int, failed: int) -> None:
        self.broadcasts += 1
        self.deliveries += delivered
        self.delivery_failures += failed

    def record_evictions(self, count: int) -> None:
        self.evictions += count

    def record_health_tick(self, probed: int, reclaimed: int) -> None:
        self.health_ticks += 1
        self.health_reclaimed += reclaimed

    def get_stats(self) -> dict[str, Any]:
        """Snapshot for health endpoints. Safe to call from sync code."""
        return {
            **self._registry.get_stats(),
            "max_connections": self._max_total_connections,
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "connections_admitted": self.connections_admitted,
            "connections_closed": self.connections_closed,
            "auth_failures": self.auth_failures,
            "capacity_rejections": self.capacity_rejections,
            "joins": self.joins,
            "joins_denied": self.joins_denied,
            "membership_errors": self.membership_errors,
            "protocol_errors": self.protocol_errors,
            "broadcasts": self.broadcasts,
            "deliveries": self.deliveries,
            "delivery_failures": self.delivery_failures,
            "evictions": self.evictions,
            "health_ticks": self.health_ticks,
            "health_reclaimed": self.health_reclaimed,
        }
