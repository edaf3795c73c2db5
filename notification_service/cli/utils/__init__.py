"""CLI utilities for running async operations and formatting output."""

from notification_service.cli.utils.async_runner import coro
from notification_service.cli.utils.formatters import (
    error,
    field,
    header,
    info,
    section,
    styled_status,
    success,
    warning,
)

__all__ = [
    "coro",
    "error",
    "field",
    "header",
    "info",
    "section",
    "styled_status",
    "success",
    "warning",
]
