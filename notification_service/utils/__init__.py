"""Utility modules for common operations."""

from notification_service.utils.retry import RetryError, RetryScheduler, retry

__all__ = ["RetryError", "RetryScheduler", "retry"]
