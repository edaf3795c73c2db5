"""Prometheus metrics shared by infrastructure components."""

from notification_service.infra.metrics.tracking import (
    track_rate_limit_check,
    track_rate_limit_hit,
    track_rate_limiter_store_error,
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

__all__ = [
    "track_rate_limit_check",
    "track_rate_limit_hit",
    "track_rate_limiter_store_error",
    "track_retry_attempt",
    "track_retry_exhausted",
    "track_retry_success",
]
