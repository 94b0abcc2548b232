"""
Resilience components.

Retry with jitter for Redis reconnection.
"""

from relay_gateway.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_redis_retry_config,
)

__all__ = [
    "RetryConfig",
    "calculate_delay_with_jitter",
    "create_redis_retry_config",
]
