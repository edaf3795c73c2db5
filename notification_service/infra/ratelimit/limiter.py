"""Per-key admission control using a fixed window with a block period."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from notification_service.core.exceptions import RateLimitException
from notification_service.infra.metrics.tracking import (
    track_rate_limit_check,
    track_rate_limit_hit,
    track_rate_limiter_store_error,
)

if TYPE_CHECKING:
    from notification_service.core.settings.notifications import NotificationSettings
    from notification_service.infra.ratelimit.store import CounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one ``consume`` call."""

    allowed: bool
    key: str
    retry_after: float = 0.0
    fail_open: bool = False


class RateLimiter:
    """Counter-store backed rate limiter.

    Each key may consume ``points`` units per ``window`` seconds. Exceeding
    the budget blocks the key for ``block_duration`` seconds; blocked keys
    are denied without consuming. Counters live in the store, so every
    instance sharing the store enforces one budget.

    When the store is unavailable the request is allowed (fail-open) and the
    error is logged and counted.

    Example:
        limiter = RateLimiter(store, points=100, window=60, block_duration=60)

        if not await limiter.consume("user-123"):
            ...
    """

    def __init__(
        self,
        store: CounterStore,
        points: int = 100,
        window: int = 60,
        block_duration: int = 60,
        key_prefix: str = "ratelimit:notifications",
        scope: str = "notifications",
    ) -> None:
        if points < 1 or window < 1:
            msg = "points and window must be positive"
            raise ValueError(msg)
        self.store = store
        self.points = points
        self.window = window
        self.block_duration = block_duration
        self.key_prefix = key_prefix
        self.scope = scope

    @classmethod
    def from_settings(cls, store: CounterStore, settings: NotificationSettings) -> RateLimiter:
        return cls(
            store,
            points=settings.rate_limit_points,
            window=settings.rate_limit_window,
            block_duration=settings.rate_limit_block_duration,
            key_prefix=settings.rate_limit_key_prefix,
        )

    def _make_key(self, identifier: str) -> str:
        # Hash long identifiers to keep key size reasonable
        if len(identifier) > 50:
            identifier = hashlib.sha256(identifier.encode()).hexdigest()[:16]
        return f"{self.key_prefix}:{identifier}"

    async def check(self, key: str) -> RateLimitDecision:
        """Consume one unit for ``key`` and report the decision."""
        store_key = self._make_key(key)

        try:
            blocked_for = await self.store.blocked_for(store_key)
            if blocked_for > 0:
                track_rate_limit_check(self.scope, allowed=False)
                track_rate_limit_hit(self.scope, limit_type="blocked")
                logger.info(
                    "Rate limited key is still blocked",
                    extra={"key": key, "retry_after": blocked_for},
                )
                return RateLimitDecision(allowed=False, key=key, retry_after=blocked_for)

            count = await self.store.incr(store_key, self.window)
            if count > self.points:
                retry_after = float(self.window)
                if self.block_duration > 0:
                    await self.store.block(store_key, self.block_duration)
                    retry_after = float(self.block_duration)
                track_rate_limit_check(self.scope, allowed=False)
                track_rate_limit_hit(self.scope, limit_type="window")
                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        "key": key,
                        "limit": self.points,
                        "window": self.window,
                        "count": count,
                        "block_duration": self.block_duration,
                    },
                )
                return RateLimitDecision(allowed=False, key=key, retry_after=retry_after)

        except Exception as e:
            track_rate_limiter_store_error(type(e).__name__)
            logger.error(
                "Rate limit check failed, allowing request",
                extra={"key": key, "error": str(e)},
                exc_info=True,
            )
            return RateLimitDecision(allowed=True, key=key, fail_open=True)

        track_rate_limit_check(self.scope, allowed=True)
        return RateLimitDecision(allowed=True, key=key)

    async def consume(self, key: str) -> bool:
        """Consume one unit for ``key``. Returns False when the key is over budget."""
        decision = await self.check(key)
        return decision.allowed

    async def reset(self, key: str) -> bool:
        """Clear the window and any block for ``key``."""
        try:
            await self.store.reset(self._make_key(key))
            logger.info(f"Rate limit reset for key: {key}")
            return True
        except Exception:
            logger.error(f"Failed to reset rate limit for key: {key}", exc_info=True)
            return False


async def check_rate_limit(limiter: RateLimiter, key: str) -> RateLimitDecision:
    """Consume one unit and raise ``RateLimitException`` when denied.

    Raises:
        RateLimitException: If the key is over budget or blocked.
    """
    decision = await limiter.check(key)

    if not decision.allowed:
        raise RateLimitException(
            detail=f"Rate limit exceeded. Try again in {decision.retry_after:.0f} seconds",
            extra={"key": key, "retry_after": decision.retry_after},
        )

    return decision
