"""
Connection Management Module.

Components composed by ConnectionManager:
- lifecycle.py: Admission and the single termination path
- broadcaster.py: Group fan-out
- eviction.py: Forced removal of (group, identity) connections
- stats.py: Counters and registry statistics
"""

from relay_gateway.core.connection.lifecycle import ConnectionLifecycle
from relay_gateway.core.connection.broadcaster import ConnectionBroadcaster
from relay_gateway.core.connection.eviction import ConnectionEviction
from relay_gateway.core.connection.stats import ConnectionStats

__all__ = [
    "ConnectionLifecycle",
    "ConnectionBroadcaster",
    "ConnectionEviction",
    "ConnectionStats",
]
