from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from notification_service.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .exceptions import RetryError, RetryStatistics
from .strategies import RetryScheduler

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    jitter_range: tuple[float, float] = (0.5, 1.5),
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[Exception, int], None] | None = None,
    scheduler: RetryScheduler | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async callable with exponential backoff.

    Pass ``scheduler`` to reuse an existing policy; otherwise one is built
    from the keyword arguments. Raises ``RetryError`` once every attempt
    failed with a retryable exception; non-retryable exceptions propagate
    immediately.

    Example:
        @retry(max_attempts=5, exceptions=(ConnectionError,))
        async def fetch():
            ...
    """
    policy = scheduler or RetryScheduler(
        max_attempts=max_attempts,
        base_delay=initial_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
        jitter_range=jitter_range,
        exceptions=exceptions,
        retry_if=retry_if,
    )

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        operation = func.__name__

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            stats = RetryStatistics(operation=operation, started=time.monotonic())
            attempt = 0
            while True:
                attempt += 1
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    if not policy.should_retry(e):
                        raise
                    if attempt == policy.max_attempts:
                        stats.finished = time.monotonic()
                        track_retry_exhausted(operation)
                        logger.error(
                            "Retries exhausted",
                            extra={
                                "operation": operation,
                                "attempts": attempt,
                                "errors": stats.errors + [type(e).__name__],
                                "total_delay": stats.total_delay,
                                "elapsed": stats.elapsed,
                            },
                        )
                        raise RetryError(e, attempt, stats) from e

                    delay = policy.next_delay(attempt - 1)
                    stats.record_failure(e, delay)
                    track_retry_attempt(operation, attempt + 1)
                    logger.warning(
                        "Retrying after failure",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": policy.max_attempts,
                            "delay": delay,
                            "error": str(e),
                        },
                    )
                    if on_retry is not None:
                        on_retry(e, attempt)
                    await asyncio.sleep(delay)
                else:
                    track_retry_success(operation, attempt)
                    return result

        return wrapper

    return decorator
