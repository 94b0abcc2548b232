"""
Forced Eviction.

Called when group management revokes a membership. Every connection of
that identity bound to that group gets the removal notice and is closed.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import WSCloseCode
from relay_gateway.components.events.types import REMOVAL_NOTICE

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.core.connection.lifecycle import ConnectionLifecycle
    from relay_gateway.core.connection.stats import ConnectionStats

logger = get_logger(__name__)

EVICTED_REASON = "Removed from group"


class ConnectionEviction:
    """
    Evicts (group, identity) pairs.

    Eviction goes through ConnectionLifecycle.terminate with the group as
    the expected binding, so a connection that rebound elsewhere between
    lookup and removal is left alone, and repeated evictions are no-ops.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        lifecycle: "ConnectionLifecycle",
        stats: "ConnectionStats | None" = None,
    ) -> None:
        self._registry = registry
        self._lifecycle = lifecycle
        self._stats = stats

    async def evict(self, group_id: str, identity: str | int) -> int:
        """
        Remove and close every connection of identity bound to group_id.

        Absence of matching connections is not an error.

        Returns:
            Number of connections evicted.
        """
        group_id = str(group_id)
        identity = str(identity)
        targets = await self._registry.find(group_id, identity)
        if not targets:
            logger.debug("Eviction found no connections", group_id=group_id, identity=identity)
            return 0

        results = await asyncio.gather(
            *(
                self._lifecycle.terminate(
                    conn,
                    WSCloseCode.POLICY_VIOLATION,
                    EVICTED_REASON,
                    notice=REMOVAL_NOTICE,
                    expected_group=group_id,
                    audit_event="EVICTED",
                )
                for conn in targets
            ),
            return_exceptions=True,
        )

        evicted = 0
        for r in results:
            if r is True:
                evicted += 1
            elif isinstance(r, Exception):
                logger.error(
                    "Error evicting connection",
                    group_id=group_id,
                    identity=identity,
                    error=str(r),
                )

        logger.info(
            "Evicted member connections",
            group_id=group_id,
            identity=identity,
            count=evicted,
        )
        if self._stats is not None:
            self._stats.record_evictions(evicted)
        return evicted
