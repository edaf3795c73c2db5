"""Prometheus metrics for e-mail transport monitoring.

Usage:
    from notification_service.infra.email.metrics import email_delivery_total

    email_delivery_total.labels(endpoint="primary", status="success").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Delivery Metrics
# =============================================================================

email_delivery_total = Counter(
    "email_delivery_total",
    "Total number of email send attempts",
    labelnames=["endpoint", "status"],
)
"""
Labels:
    endpoint: ``primary`` or ``failover``
    status: ``success`` or the failure error code (``transport_error``, ``invalid_template``...)
"""

email_delivery_duration_seconds = Histogram(
    "email_delivery_duration_seconds",
    "Email send duration in seconds",
    labelnames=["endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

email_failover_total = Counter(
    "email_failover_total",
    "Total number of sends routed to the failover endpoint",
    labelnames=["status"],
)

# =============================================================================
# Pool and Throttle Metrics
# =============================================================================

smtp_connections_opened_total = Counter(
    "smtp_connections_opened_total",
    "SMTP connections opened by the pool",
    labelnames=["endpoint"],
)

smtp_connections_in_use = Gauge(
    "smtp_connections_in_use",
    "SMTP connections currently checked out of the pool",
    labelnames=["endpoint"],
)

email_throttle_wait_seconds = Histogram(
    "email_throttle_wait_seconds",
    "Time spent waiting for the global send-rate ceiling",
    buckets=[0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
