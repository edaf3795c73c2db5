"""Prometheus metrics for notification delivery monitoring.

This module provides metrics for tracking notifications:
- Creation, admission and eligibility counters
- Delivery outcome and attempts by channel
- Delivery duration histograms
- Status transitions and broadcast failures

Usage:
    from notification_service.features.notifications.metrics import (
        notification_created_total,
        notification_delivery_total,
    )

    notification_created_total.labels(notification_type="TASK_ASSIGNED", priority="HIGH").inc()
    notification_delivery_total.labels(channel="email", outcome="DELIVERED").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Notification Lifecycle Metrics
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of notifications created",
    labelnames=["notification_type", "priority"],
)

notification_rate_limited_total = Counter(
    "notification_rate_limited_total",
    "Total number of notification requests denied by admission control",
)

notification_skipped_total = Counter(
    "notification_skipped_total",
    "Notifications persisted without invoking any channel",
    labelnames=["reason"],
)
"""
Labels:
    reason: muted_type, below_priority_threshold, quiet_hours, no_channels
"""

notification_status_total = Counter(
    "notification_status_total",
    "Final delivery status computed per dispatch",
    labelnames=["status"],
)

# =============================================================================
# Channel Delivery Metrics
# =============================================================================

notification_delivery_total = Counter(
    "notification_delivery_total",
    "Channel delivery results",
    labelnames=["channel", "outcome"],
)
"""
Labels:
    channel: email, in_app, push
    outcome: DELIVERED, RETRYABLE_FAILURE, TERMINAL_FAILURE
"""

notification_channel_attempts_total = Counter(
    "notification_channel_attempts_total",
    "Send attempts made by channel adapters (retries and failover included)",
    labelnames=["channel"],
)

notification_delivery_duration_seconds = Histogram(
    "notification_delivery_duration_seconds",
    "Time to deliver through one channel, retries included",
    labelnames=["channel"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 150.0],
)

# =============================================================================
# Status Broadcast Metrics
# =============================================================================

notification_status_published_total = Counter(
    "notification_status_published_total",
    "Status transitions broadcast on the pub/sub bus",
    labelnames=["status"],
)

notification_status_publish_failures_total = Counter(
    "notification_status_publish_failures_total",
    "Status broadcasts that failed (logged, not retried)",
)

notification_status_messages_total = Counter(
    "notification_status_messages_total",
    "Status messages consumed by the status listener",
    labelnames=["result"],
)
"""
Labels:
    result: applied, redelivered, malformed, not_found
"""
