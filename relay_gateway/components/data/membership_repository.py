"""
Repository for Group Membership lookups.

The relay asks exactly one question of the group store: is this identity
a member of this group right now? Answers are never cached; every join
attempt goes to the store.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from shared.config.logging import get_logger
from relay_gateway.components.core.constants import WSConstants
from relay_gateway.components.core.errors import InternalError

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

logger = get_logger(__name__)


class MembershipOracle(Protocol):
    """
    Answers membership questions for the relay.

    Implementations return False for unknown or malformed group ids and
    raise InternalError when the answer cannot be determined.
    """

    async def is_member(self, identity: str, group_id: str) -> bool:
        ...


def is_valid_group_id(group_id: Any) -> bool:
    """Cheap shape check run before touching the store."""
    return (
        isinstance(group_id, str)
        and 0 < len(group_id) <= WSConstants.MAX_GROUP_ID_LENGTH
        and group_id.strip() == group_id
    )


class SqlMembershipOracle:
    """
    Membership lookups against the group store via SQLAlchemy.

    Queries run in a worker thread with a timeout so a slow database never
    blocks the event loop.

    Usage:
        oracle = SqlMembershipOracle()
        if await oracle.is_member("42", "f3a9..."):
            ...
    """

    def __init__(
        self,
        session_factory: "sessionmaker | None" = None,
        timeout: float = WSConstants.MEMBERSHIP_LOOKUP_TIMEOUT,
    ) -> None:
        """
        Args:
            session_factory: Session factory for the group store. Defaults to
                shared.infrastructure.db.SessionLocal, resolved on first use.
            timeout: Seconds before a lookup is abandoned.
        """
        self._session_factory = session_factory
        self._timeout = timeout
        self._lookup_success = 0
        self._lookup_timeouts = 0
        self._lookup_errors = 0

    async def is_member(self, identity: str, group_id: str) -> bool:
        """
        Check whether identity is currently a member of group_id.

        Raises:
            InternalError: On timeout or database error.
        """
        if not is_valid_group_id(group_id) or not identity:
            logger.debug("Membership check for malformed group id", group_id=str(group_id)[:80])
            return False

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._is_member_sync, str(identity), group_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._lookup_timeouts += 1
            logger.error(
                "Membership lookup timed out",
                identity=identity,
                group_id=group_id,
                timeout=self._timeout,
                total_timeouts=self._lookup_timeouts,
            )
            raise InternalError("membership_store", "lookup timed out")
        except SQLAlchemyError as e:
            self._lookup_errors += 1
            logger.error(
                "Membership lookup failed",
                identity=identity,
                group_id=group_id,
                error=str(e),
                total_errors=self._lookup_errors,
            )
            raise InternalError("membership_store", type(e).__name__) from e

        self._lookup_success += 1
        return result

    def _is_member_sync(self, identity: str, group_id: str) -> bool:
        # Imported here so tests that inject a session factory never build
        # the default engine
        from shared.infrastructure.db import get_db_context
        from shared.models import GroupMember

        session_factory = self._session_factory
        if session_factory is None:
            from shared.infrastructure.db import SessionLocal

            session_factory = SessionLocal

        with get_db_context(session_factory) as db:
            member_id = db.scalar(
                select(GroupMember.id)
                .where(
                    GroupMember.group_id == group_id,
                    GroupMember.user_id == identity,
                )
                .limit(1)
            )
        return member_id is not None

    def get_stats(self) -> dict[str, Any]:
        return {
            "timeout": self._timeout,
            "lookups": {
                "success": self._lookup_success,
                "timeouts": self._lookup_timeouts,
                "errors": self._lookup_errors,
            },
        }
