"""Retry outcome types."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RetryStatistics:
    """What one retried call went through before it succeeded or gave up."""

    operation: str
    started: float
    finished: float | None = None
    delays: list[float] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_delay(self) -> float:
        return sum(self.delays)

    @property
    def elapsed(self) -> float:
        return (self.finished or self.started) - self.started

    def record_failure(self, exception: Exception, delay: float) -> None:
        self.errors.append(type(exception).__name__)
        self.delays.append(delay)


class RetryError(Exception):
    """Every attempt of a retried call failed with a retryable error.

    Attributes:
        last_exception: Error raised by the final attempt
        attempts: Attempts made
        statistics: Delays and error types seen along the way
    """

    def __init__(
        self,
        last_exception: Exception,
        attempts: int,
        statistics: RetryStatistics | None = None,
    ) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        self.statistics = statistics
        operation = statistics.operation if statistics else "operation"
        super().__init__(f"{operation} gave up after {attempts} attempts: {last_exception}")
