from __future__ import annotations

import random
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from notification_service.core.settings.notifications import NotificationSettings


@dataclass(frozen=True)
class RetryScheduler:
    """Backoff policy: attempt number -> delay.

    ``next_delay(attempt)`` is ``base_delay * exponential_base ** attempt``
    capped at ``max_delay`` (attempts are 0-indexed). Frozen and stateless,
    so one instance is shared by every channel adapter.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False
    jitter_range: tuple[float, float] = (0.5, 1.5)
    exceptions: tuple[type[Exception], ...] = (Exception,)
    retry_if: Callable[[Exception], bool] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "delays must not be negative"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> RetryScheduler:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(self.jitter_range[0], self.jitter_range[1])
        return delay

    def delays(self) -> Iterator[float]:
        """Delays slept between consecutive attempts (``max_attempts - 1`` values)."""
        for attempt in range(self.max_attempts - 1):
            yield self.next_delay(attempt)

    def should_retry(self, exception: Exception) -> bool:
        if self.retry_if is not None:
            return self.retry_if(exception)
        return isinstance(exception, self.exceptions)
