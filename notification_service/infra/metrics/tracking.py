"""Helper functions that record infrastructure metrics."""

from __future__ import annotations

from notification_service.infra.metrics import business

# ============================================================================
# Rate Limit Tracking
# ============================================================================


def track_rate_limit_check(scope: str, allowed: bool) -> None:
    """Track a rate limit check.

    Args:
        scope: Limiter scope (e.g. ``notifications`` or ``smtp``)
        allowed: Whether the request was allowed

    Example:
            track_rate_limit_check("notifications", allowed=True)
    """
    result = "allowed" if allowed else "denied"
    business.rate_limit_checks_total.labels(scope=scope, result=result).inc()


def track_rate_limit_hit(scope: str, limit_type: str = "window") -> None:
    """Track when a rate limit is hit.

    Args:
        scope: Limiter scope
        limit_type: ``window`` when the budget ran out, ``blocked`` while blocked
    """
    business.rate_limit_hits_total.labels(scope=scope, limit_type=limit_type).inc()


def track_rate_limiter_store_error(error_type: str) -> None:
    """Track a counter store error during a rate limit check."""
    business.rate_limiter_store_errors_total.labels(error_type=error_type).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Current attempt number (1-indexed)
    """
    business.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    business.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts: int) -> None:
    """Track an operation that succeeded after retrying.

    Args:
        operation: Name of the operation
        attempts: Total attempts it took
    """
    if attempts > 1:
        business.retry_success_total.labels(operation=operation).inc()
