"""
Data access for the relay.
"""

from relay_gateway.components.data.membership_repository import (
    MembershipOracle,
    SqlMembershipOracle,
    is_valid_group_id,
)

__all__ = [
    "MembershipOracle",
    "SqlMembershipOracle",
    "is_valid_group_id",
]
