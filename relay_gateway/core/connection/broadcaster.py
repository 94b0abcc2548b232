"""
Group Broadcasting.

Fans a sender's message out to every other connection bound to the same
group. Recipients are snapshotted under the registry lock and sent to
concurrently outside it; one slow or broken recipient never delays or
fails the others, and never surfaces to the sender.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from relay_gateway.components.events.types import delivered_frame

if TYPE_CHECKING:
    from relay_gateway.components.connection.connection import Connection
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.core.connection.stats import ConnectionStats

logger = get_logger(__name__)


class ConnectionBroadcaster:
    """
    Delivers {"sender", "message"} frames to a group.

    The sending connection is excluded by handle, not by identity, so the
    same user's other tabs in the group still receive the message.

    Per-sender order follows from the session awaiting each broadcast
    before reading its next frame, plus each recipient's send lock.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        stats: "ConnectionStats | None" = None,
    ) -> None:
        self._registry = registry
        self._stats = stats

    async def broadcast(
        self,
        group_id: str,
        sender: "Connection",
        payload: Any,
    ) -> int:
        """
        Send payload to every connection in group_id except sender.

        Args:
            group_id: Target group.
            sender: Sending connection (must be authenticated).
            payload: Opaque message forwarded verbatim.

        Returns:
            Number of recipients the frame was delivered to.
        """
        sender_identity = sender.identity
        recipients = await self._registry.members(group_id, exclude_handle=sender.handle)
        if not recipients:
            if self._stats is not None:
                self._stats.record_broadcast(delivered=0, failed=0)
            return 0

        # Serialize once; every recipient gets the same text
        text = json.dumps(delivered_frame(sender_identity, payload), ensure_ascii=False)

        results = await asyncio.gather(
            *(conn.send_text(text) for conn in recipients),
            return_exceptions=True,
        )

        delivered = 0
        failed = 0
        for conn, result in zip(recipients, results):
            if result is True:
                delivered += 1
                continue
            failed += 1
            # Left registered; liveness only changes on probe answers
            if isinstance(result, Exception):
                logger.error(
                    "Unexpected error delivering message",
                    group_id=group_id,
                    recipient=conn.handle,
                    error=str(result),
                    error_type=type(result).__name__,
                )

        if failed:
            logger.warning(
                "Broadcast had failed deliveries",
                group_id=group_id,
                sender=sender_identity,
                delivered=delivered,
                failed=failed,
            )
        if self._stats is not None:
            self._stats.record_broadcast(delivered=delivered, failed=failed)
        return delivered
