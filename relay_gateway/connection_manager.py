"""
Relay Connection Manager.

Thin orchestrator that composes the relay components around one explicit
ConnectionRegistry:
- ConnectionLifecycle: admission and the single termination path
- ConnectionBroadcaster: group fan-out
- ConnectionEviction: forced removal of a member from a group
- HealthMonitor: periodic liveness probing
- ConnectionStats: counters for the health endpoints

The membership oracle and credential verifier are injected, so tests can
swap either without touching the database or signing real tokens.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import settings
from relay_gateway.components.auth.strategies import CredentialVerifier, JWTCredentialVerifier
from relay_gateway.components.connection.heartbeat import HealthMonitor
from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.data.membership_repository import (
    MembershipOracle,
    SqlMembershipOracle,
)
from relay_gateway.core.connection import (
    ConnectionBroadcaster,
    ConnectionEviction,
    ConnectionLifecycle,
    ConnectionStats,
)

if TYPE_CHECKING:
    from relay_gateway.components.connection.connection import Connection

logger = get_logger(__name__)


class ConnectionManager:
    """
    Owns the relay's shared state and exposes the operations endpoints,
    background tasks and internal routes need.

    Configuration from settings (overridable per instance):
    - ws_max_total_connections: Admission limit (default: 1000)
    - ws_health_check_interval: Probe period in seconds (default: 30)
    - ws_send_timeout: Per-frame send timeout (default: 5)
    - ws_max_message_size: Inbound frame limit (default: 64 KB)
    - ws_accept_timeout: Handshake accept timeout (default: 5)

    Usage:
        manager = ConnectionManager()
        app = create_app(manager)
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        membership_oracle: MembershipOracle | None = None,
        credential_verifier: CredentialVerifier | None = None,
        *,
        max_total_connections: int | None = None,
        health_check_interval: float | None = None,
        send_timeout: float | None = None,
        max_message_size: int | None = None,
        accept_timeout: float | None = None,
    ) -> None:
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.membership_oracle: MembershipOracle = membership_oracle or SqlMembershipOracle(
            timeout=settings.ws_membership_lookup_timeout,
        )
        self.credential_verifier: CredentialVerifier = (
            credential_verifier or JWTCredentialVerifier()
        )

        self.max_total_connections = max_total_connections or settings.ws_max_total_connections
        self.send_timeout = send_timeout or settings.ws_send_timeout
        self.max_message_size = max_message_size or settings.ws_max_message_size
        self.accept_timeout = accept_timeout or settings.ws_accept_timeout

        self.stats = ConnectionStats(self.registry, self.max_total_connections)
        self._lifecycle = ConnectionLifecycle(
            registry=self.registry,
            stats=self.stats,
            max_total_connections=self.max_total_connections,
        )
        self._broadcaster = ConnectionBroadcaster(self.registry, self.stats)
        self._eviction = ConnectionEviction(self.registry, self._lifecycle, self.stats)
        self.health_monitor = HealthMonitor(
            self.registry,
            self._lifecycle,
            interval=health_check_interval or settings.ws_health_check_interval,
            stats=self.stats,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def accepting(self) -> bool:
        return self._lifecycle.accepting

    async def admit(self, conn: "Connection") -> bool:
        return await self._lifecycle.admit(conn)

    async def terminate(
        self,
        conn: "Connection",
        code: int,
        reason: str,
        notice: dict[str, Any] | None = None,
        expected_group: str | None = None,
        audit_event: str | None = None,
    ) -> bool:
        return await self._lifecycle.terminate(
            conn,
            code,
            reason,
            notice=notice,
            expected_group=expected_group,
            audit_event=audit_event,
        )

    async def shutdown(self) -> int:
        """Stop admitting and close every connection with GOING_AWAY."""
        return await self._lifecycle.shutdown()

    # =========================================================================
    # Session operations
    # =========================================================================

    async def is_member(self, identity: str, group_id: str) -> bool:
        return await self.membership_oracle.is_member(identity, group_id)

    async def bind(self, conn: "Connection", group_id: str) -> bool:
        return await self.registry.bind(conn, group_id)

    async def broadcast(self, group_id: str, sender: "Connection", payload: Any) -> int:
        return await self._broadcaster.broadcast(group_id, sender, payload)

    async def evict(self, group_id: str, identity: str | int) -> int:
        """Remove identity's connections from group_id. Returns the count."""
        return await self._eviction.evict(group_id, identity)

    # =========================================================================
    # Health
    # =========================================================================

    async def run_health_monitor(self) -> None:
        await self.health_monitor.run()

    def get_stats(self) -> dict[str, Any]:
        stats = self.stats.get_stats()
        stats["accepting"] = self.accepting
        stats["health_check_interval"] = self.health_monitor.interval
        oracle_stats = getattr(self.membership_oracle, "get_stats", None)
        if callable(oracle_stats):
            stats["membership"] = oracle_stats()
        return stats
