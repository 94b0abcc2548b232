"""
Membership events over Redis pub/sub.

- event_types.py: Event type constants
- event_schema.py: MembershipEvent dataclass with validation
- channels.py: Channel naming functions
- redis_pool.py: Connection pool management
- publisher.py: publish_event with retry, publish_member_removed
"""

from .event_types import MEMBER_ADDED, MEMBER_REMOVED, MAX_EVENT_SIZE
from .event_schema import MembershipEvent
from .channels import MEMBERSHIP_CHANNEL_PATTERN, channel_group_membership
from .redis_pool import get_redis_pool, close_redis_pool
from .publisher import (
    calculate_retry_delay_with_jitter,
    publish_event,
    publish_member_removed,
)

__all__ = [
    "MEMBER_ADDED",
    "MEMBER_REMOVED",
    "MAX_EVENT_SIZE",
    "MembershipEvent",
    "MEMBERSHIP_CHANNEL_PATTERN",
    "channel_group_membership",
    "get_redis_pool",
    "close_redis_pool",
    "calculate_retry_delay_with_jitter",
    "publish_event",
    "publish_member_removed",
]
