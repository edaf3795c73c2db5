"""Logging setup for the engine and the CLI.

Records from every logger propagate to a single ``QueueHandler`` on the
root logger; a ``QueueListener`` thread drains the queue into the console
and (optionally) rotating file handlers, so a slow sink never blocks the
event loop. Output is JSON lines by default.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from dataclasses import dataclass, field
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from typing import TYPE_CHECKING, Any

from notification_service.infra.logging.context import ContextInjectingFilter
from notification_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from notification_service.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


@dataclass
class _Pipeline:
    """Queue handler on the root logger plus the listener feeding the sinks."""

    queue_handler: QueueHandler | None = None
    listener: QueueListener | None = None
    configured: bool = False
    sinks: list[logging.Handler] = field(default_factory=list)

    def stop(self) -> None:
        if self.listener is not None:
            self.listener.stop()
            self.listener = None
        if self.queue_handler is not None:
            logging.getLogger().removeHandler(self.queue_handler)
            self.queue_handler = None
        for sink in self.sinks:
            sink.close()
        self.sinks = []


_pipeline = _Pipeline()


def shutdown() -> None:
    """Flush pending records and detach the queue handler. Idempotent."""
    _pipeline.stop()


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **overrides: Any,
) -> None:
    """Configure logging from ``LoggingSettings`` once per process.

    Args:
        log_settings: Settings to use instead of ``get_logging_settings()``.
        force: Reconfigure even if logging was already set up.
        **overrides: Keyword arguments passed through to ``configure_logging()``.
    """
    if _pipeline.configured and not force:
        return

    if log_settings is None:
        from notification_service.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**{**log_settings.to_logging_kwargs(), **overrides})
    _pipeline.configured = True


def configure_logging(
    log_level: str = "INFO",
    console_level: str | None = None,
    file_level: str | None = None,
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    include_context: bool = True,
    capture_warnings: bool = True,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    service_name: str = "notification-service",
) -> None:
    """Install the queue-based logging pipeline, replacing any previous one.

    Args:
        log_level: Root logger level.
        console_level: Console sink level (defaults to ``log_level``).
        file_level: File sink level (defaults to ``log_level``).
        file_path: JSON lines file, rotated at ``file_max_bytes``. None disables it.
        json_logs: JSON lines instead of plain text.
        console_enabled: Write to stderr.
        include_context: Copy the ContextVar log context onto each record.
        capture_warnings: Route ``warnings.warn()`` through logging.
        file_max_bytes: Rotation size.
        file_backup_count: Rotated files kept.
        service_name: Static ``service`` field on JSON records.
    """
    shutdown()
    logging.captureWarnings(capture_warnings)

    # dictConfig only resets the root level; sinks live behind the listener
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
        },
    )

    formatter = _formatter(json_logs, service_name)
    if console_enabled:
        _pipeline.sinks.append(_sink(logging.StreamHandler(), console_level or log_level, formatter))

    path = Path(file_path) if file_path else None
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        _pipeline.sinks.append(_sink(rotating, file_level or log_level, formatter))

    queue: SimpleQueue[logging.LogRecord] = SimpleQueue()
    _pipeline.queue_handler = QueueHandler(queue)
    # Filters on the root logger never see propagated records; filter at the handler
    if include_context:
        _pipeline.queue_handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(_pipeline.queue_handler)

    if _pipeline.sinks:
        _pipeline.listener = QueueListener(queue, *_pipeline.sinks, respect_handler_level=True)
        _pipeline.listener.start()
        atexit.register(shutdown)

    logger.debug(
        "Logging configured",
        extra={"log_level": log_level, "json_logs": json_logs, "file_path": str(path) if path else None},
    )


def _sink(handler: logging.Handler, level: str, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level.upper())
    handler.setFormatter(formatter)
    return handler


def _formatter(json_logs: bool, service_name: str) -> logging.Formatter:
    if not json_logs:
        return logging.Formatter(TEXT_FORMAT)
    return JSONFormatter(
        fmt_keys={"level": "levelname", "logger": "name", "message": "message"},
        static={"service": service_name},
    )
