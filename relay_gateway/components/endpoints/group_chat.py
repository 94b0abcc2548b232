"""
Group Chat Endpoint.

The per-connection session: an authenticated connection starts idle,
becomes joined after a membership-checked joinGroup, and relays
sendMessage payloads to the rest of its group while joined.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket

from shared.config.logging import get_logger
from relay_gateway.components.connection.connection import SessionState
from relay_gateway.components.core.errors import AccessDenied, InternalError, NotJoinedError
from relay_gateway.components.endpoints.base import WebSocketEndpointBase
from relay_gateway.components.events.types import InboundEvent, JoinGroup, SendMessage

if TYPE_CHECKING:
    from relay_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class GroupChatEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for group chat.

    States:
        idle:   authenticated, not bound to a group
        joined: bound to exactly one group; a new joinGroup rebinds

    A failed join ends the session. Joining sends no acknowledgement.
    """

    def __init__(self, websocket: WebSocket, manager: "ConnectionManager"):
        super().__init__(websocket=websocket, manager=manager, endpoint_name="/ws")

    async def handle_event(self, event: InboundEvent) -> bool:
        if isinstance(event, JoinGroup):
            return await self.on_join(event.group_id)
        if isinstance(event, SendMessage):
            return await self.on_send(event.message)
        # parse_inbound only produces the four event types
        logger.warning("Unhandled event", event_type=type(event).__name__)
        return True

    async def on_join(self, group_id: str) -> bool:
        """
        Bind this connection to group_id after a membership check.

        Raises:
            AccessDenied: If the identity is not a member, or membership
                could not be determined.
        """
        conn = self.connection
        identity = conn.identity

        try:
            allowed = await self.manager.is_member(identity, group_id)
        except InternalError as e:
            self.manager.stats.record_membership_error()
            logger.error(
                "Membership lookup failed",
                identity=identity,
                group_id=group_id,
                component=e.component,
                error=e.detail,
            )
            allowed = False
        except Exception as e:
            self.manager.stats.record_membership_error()
            logger.error(
                "Membership lookup failed",
                identity=identity,
                group_id=group_id,
                component="membership_store",
                error=str(e),
                exc_info=True,
            )
            allowed = False

        self.manager.stats.record_join(allowed)
        self.context.group_id = group_id
        if not allowed:
            raise AccessDenied(detail=f"group={group_id}")

        if not await self.manager.bind(conn, group_id):
            # Terminated while the lookup was in flight
            logger.debug("Join raced with termination", handle=conn.handle, group_id=group_id)
            return False

        logger.info("Joined group", identity=identity, group_id=group_id)
        return True

    async def on_send(self, message: object) -> bool:
        """
        Relay message to every other connection in the bound group.

        Raises:
            NotJoinedError: If the connection is still idle.
        """
        conn = self.connection
        if conn.state is not SessionState.JOINED or conn.bound_group is None:
            raise NotJoinedError()

        await self.manager.broadcast(conn.bound_group, conn, message)
        return True
