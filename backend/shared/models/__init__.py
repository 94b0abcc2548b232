"""
ORM models for the group store read by the relay.
"""

from shared.models.base import Base
from shared.models.group import Group, GroupMember, GroupRole

__all__ = [
    "Base",
    "Group",
    "GroupMember",
    "GroupRole",
]
