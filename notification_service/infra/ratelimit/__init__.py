"""Rate limiting: per-recipient admission control and counter stores."""

from __future__ import annotations

from notification_service.infra.ratelimit.limiter import (
    RateLimitDecision,
    RateLimiter,
    check_rate_limit,
)
from notification_service.infra.ratelimit.store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
)

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RateLimitDecision",
    "RateLimiter",
    "RedisCounterStore",
    "check_rate_limit",
]
