"""Prometheus metrics for cross-cutting infrastructure (retry, rate limiting)."""

from __future__ import annotations

from prometheus_client import Counter

# =============================================================================
# Rate limiting
# =============================================================================

rate_limit_checks_total = Counter(
    "rate_limit_checks_total",
    "Total rate limit checks",
    labelnames=["scope", "result"],
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total rate limit denials",
    labelnames=["scope", "limit_type"],
)

rate_limiter_store_errors_total = Counter(
    "rate_limiter_store_errors_total",
    "Counter store errors during rate limit checks (request allowed)",
    labelnames=["error_type"],
)

# =============================================================================
# Retry
# =============================================================================

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total retry attempts",
    labelnames=["operation", "attempt_number"],
)

retry_exhausted_total = Counter(
    "retry_exhausted_total",
    "Operations that exhausted every retry attempt",
    labelnames=["operation"],
)

retry_success_total = Counter(
    "retry_success_total",
    "Operations that succeeded after at least one retry",
    labelnames=["operation"],
)
