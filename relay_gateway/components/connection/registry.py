"""
Connection Registry.

The one shared mutable structure of the relay: live connections by handle,
plus a secondary index from group id to the handles bound to it. A single
asyncio.Lock guards structure only; callers get snapshots and do their I/O
outside the lock.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.connection.connection import SessionState

if TYPE_CHECKING:
    from relay_gateway.components.connection.connection import Connection

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Live connections and their group bindings.

    Invariants:
    - A connection appears in a group's index iff it is registered and its
      bound_group is that group.
    - Only authenticated connections are ever registered.
    - remove() is idempotent; once it returns, no later snapshot contains
      the connection.

    Usage:
        registry = ConnectionRegistry()
        await registry.add(conn)
        await registry.bind(conn, "group-1")
        recipients = await registry.members("group-1", exclude_handle=conn.handle)
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_group: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, conn: "Connection", max_connections: int | None = None) -> bool:
        """
        Register an authenticated connection.

        Args:
            conn: Connection that has passed authenticate().
            max_connections: Optional admission limit.

        Returns:
            True if registered, False if the limit was reached.

        Raises:
            UnauthenticatedConnectionError: If conn was never authenticated.
            ValueError: If the handle is already registered.
        """
        conn.require_authenticated()
        async with self._lock:
            if conn.handle in self._connections:
                raise ValueError(f"Connection {conn.handle} already registered")
            if max_connections is not None and len(self._connections) >= max_connections:
                return False
            self._connections[conn.handle] = conn
        return True

    async def bind(self, conn: "Connection", group_id: str) -> bool:
        """
        Bind conn to group_id, dropping any previous binding.

        Returns:
            False if conn is no longer registered (terminated concurrently).
        """
        conn.require_authenticated()
        async with self._lock:
            if self._connections.get(conn.handle) is not conn:
                return False
            previous = conn.bound_group
            if previous is not None and previous != group_id:
                self._unindex(conn.handle, previous)
            self._by_group.setdefault(group_id, set()).add(conn.handle)
            conn.bound_group = group_id
            conn.state = SessionState.JOINED
        if previous is not None and previous != group_id:
            logger.debug(
                "Connection rebound",
                handle=conn.handle,
                previous_group=previous,
                group_id=group_id,
            )
        return True

    async def remove(self, conn: "Connection", expected_group: str | None = None) -> bool:
        """
        Remove conn and its group binding.

        Args:
            conn: Connection to remove.
            expected_group: When given, only remove if conn is still bound
                to this group (eviction racing with a rebind).

        Returns:
            True if this call removed the connection.
        """
        async with self._lock:
            if self._connections.get(conn.handle) is not conn:
                return False
            if expected_group is not None and conn.bound_group != expected_group:
                return False
            del self._connections[conn.handle]
            if conn.bound_group is not None:
                self._unindex(conn.handle, conn.bound_group)
        return True

    def _unindex(self, handle: str, group_id: str) -> None:
        """Drop handle from a group index. Caller holds the lock."""
        handles = self._by_group.get(group_id)
        if handles is None:
            return
        handles.discard(handle)
        if not handles:
            del self._by_group[group_id]

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def members(
        self,
        group_id: str,
        exclude_handle: str | None = None,
    ) -> list["Connection"]:
        """Connections currently bound to group_id, optionally minus one."""
        async with self._lock:
            handles = self._by_group.get(group_id, ())
            return [
                self._connections[h]
                for h in handles
                if h != exclude_handle
            ]

    async def find(self, group_id: str, identity: str) -> list["Connection"]:
        """Connections bound to group_id that authenticated as identity."""
        async with self._lock:
            handles = self._by_group.get(group_id, ())
            return [
                self._connections[h]
                for h in handles
                if self._connections[h].identity == identity
            ]

    async def snapshot(self) -> list["Connection"]:
        """All registered connections."""
        async with self._lock:
            return list(self._connections.values())

    def get(self, handle: str) -> "Connection | None":
        return self._connections.get(handle)

    def __contains__(self, conn: object) -> bool:
        handle = getattr(conn, "handle", None)
        return handle is not None and self._connections.get(handle) is conn

    def __len__(self) -> int:
        return len(self._connections)

    def get_stats(self) -> dict[str, int]:
        """
        Structure counts. Reads without the lock; values may be one
        mutation stale, which is fine for health endpoints.
        """
        groups = dict(self._by_group)
        return {
            "total_connections": len(self._connections),
            "joined_connections": sum(len(h) for h in groups.values()),
            "active_groups": len(groups),
        }
