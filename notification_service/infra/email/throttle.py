"""Global outbound send-rate ceiling.

Protects the SMTP relay itself, independently of per-recipient admission
control. Tokens live in the shared counter store, so the ceiling holds
across every instance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from notification_service.infra.email.metrics import email_throttle_wait_seconds
from notification_service.infra.metrics.tracking import track_rate_limiter_store_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_service.core.settings.email import EmailSettings
    from notification_service.infra.ratelimit.store import CounterStore

logger = logging.getLogger(__name__)


class SendRateLimiter:
    """Token bucket: ``rate`` sends per second with ``burst`` capacity.

    ``acquire()`` suspends the caller until a token is available.
    """

    def __init__(
        self,
        store: CounterStore,
        rate: float = 10.0,
        burst: int = 50,
        key: str = "ratelimit:smtp:send",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0 or burst < 1:
            msg = "rate and burst must be positive"
            raise ValueError(msg)
        self.store = store
        self.rate = rate
        self.burst = burst
        self.key = key
        self._sleep = sleep

    @classmethod
    def from_settings(cls, store: CounterStore, settings: EmailSettings) -> SendRateLimiter:
        return cls(store, rate=settings.max_per_second, burst=settings.max_burst)

    async def acquire(self) -> float:
        """Wait for a send token. Returns the seconds spent waiting."""
        started = time.monotonic()
        waited = 0.0
        while True:
            try:
                wait = await self.store.take_token(self.key, self.rate, self.burst)
            except Exception as e:
                track_rate_limiter_store_error(type(e).__name__)
                logger.error(
                    "Send throttle unavailable, sending without it",
                    extra={"error": str(e)},
                    exc_info=True,
                )
                break
            if wait <= 0:
                break
            waited += wait
            await self._sleep(wait)

        email_throttle_wait_seconds.observe(time.monotonic() - started)
        if waited:
            logger.debug("Send throttled", extra={"waited": waited})
        return waited
