"""JSON lines formatter."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord has; anything else came from extra= or the context filter
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

DEFAULT_KEYS = {"level": "levelname", "logger": "name", "message": "message"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamps in UTC with a ``Z`` suffix.

    Fields passed through ``extra=``, bound by ``ContextBoundLogger`` or
    injected by ``ContextInjectingFilter`` become top-level keys.
    Tracebacks are kept in an ``exception`` string so each record stays on
    one line.

    Example output:
        {"level": "WARNING", "logger": "...channels.email", "message": "Primary attempt failed",
         "timestamp": "2025-01-01T00:00:00.123Z", "service": "notification-service",
         "notification_id": "5f0c...", "channel": "email", "attempt": 2}
    """

    def __init__(
        self,
        fmt_keys: dict[str, str] | None = None,
        static: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            fmt_keys: Output key -> LogRecord attribute.
            static: Fields added to every record (e.g. ``{"service": "notification-service"}``).
        """
        super().__init__()
        self.fmt_keys = fmt_keys or DEFAULT_KEYS
        self.static = static or {}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict[str, Any] = {key: getattr(record, attr, None) for key, attr in self.fmt_keys.items()}
        data["timestamp"] = self._timestamp(record)
        data.update(self.static)

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack"] = self.formatStack(record.stack_info)

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in data:
                data[key] = value

        return json.dumps(data, ensure_ascii=False, default=str)

    @staticmethod
    def _timestamp(record: logging.LogRecord) -> str:
        moment = datetime.fromtimestamp(record.created, tz=UTC)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
