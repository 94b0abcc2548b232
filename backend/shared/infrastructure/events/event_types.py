"""
Membership event type constants.

Published by the group-management service on the group membership
channel and consumed by the relay.
"""

# A member was removed from a group (kick, leave, or group deletion)
MEMBER_REMOVED = "MEMBER_REMOVED"

# A member was added or approved; the relay does not act on it
MEMBER_ADDED = "MEMBER_ADDED"

MEMBERSHIP_EVENT_TYPES = frozenset({MEMBER_REMOVED, MEMBER_ADDED})

# Membership events are tiny; anything larger is malformed
MAX_EVENT_SIZE = 4 * 1024
