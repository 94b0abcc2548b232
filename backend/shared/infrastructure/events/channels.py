"""
Redis Channel Naming.

Group ids are opaque strings owned by group management, so the only
validation is that they are non-empty and contain no channel separators.
"""

from __future__ import annotations

# psubscribe pattern matching every group's membership channel
MEMBERSHIP_CHANNEL_PATTERN = "group:*:membership"


def _validate_group_id(group_id: str) -> None:
    if not isinstance(group_id, str) or not group_id:
        raise ValueError(f"group_id must be a non-empty string, got {group_id!r}")
    if ":" in group_id or "*" in group_id:
        raise ValueError(f"group_id must not contain ':' or '*', got {group_id!r}")


def channel_group_membership(group_id: str) -> str:
    """Channel for membership changes of a single group."""
    _validate_group_id(group_id)
    return f"group:{group_id}:membership"
