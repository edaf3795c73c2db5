"""Per-task logging context.

Fields bound with ``set_log_context()`` (``notification_id``, ``channel``)
are copied onto every record emitted from the same task. Tasks created
with ``asyncio.create_task`` start from a copy of their parent's context,
so a channel task sees the dispatcher's notification id and can add its
own channel without the parent seeing it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any

_EMPTY: Mapping[str, Any] = MappingProxyType({})

_log_context: ContextVar[Mapping[str, Any]] = ContextVar("notification_log_context", default=_EMPTY)


def set_log_context(**fields: Any) -> None:
    """Add or replace fields for the current task.

    Example:
        set_log_context(notification_id="n-123")
        logger.info("Dispatching")  # record carries notification_id
    """
    _log_context.set(MappingProxyType({**_log_context.get(), **fields}))


def get_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


def remove_from_log_context(*keys: str) -> None:
    current = _log_context.get()
    _log_context.set(MappingProxyType({k: v for k, v in current.items() if k not in keys}))


def clear_log_context() -> None:
    _log_context.set(_EMPTY)


class ContextInjectingFilter(logging.Filter):
    """Copy the task's log context onto each record.

    Attributes already on the record (explicit ``extra=``) win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            record.__dict__.setdefault(key, value)
        return True


class ContextBoundLogger(logging.LoggerAdapter):
    """Logger with fields attached to every call.

    Unlike ``logging.LoggerAdapter``, per-call ``extra=`` is merged with the
    bound fields instead of replacing them.

    Example:
        logger = get_logger(__name__, channel="email")
        logger.warning("Attempt failed", extra={"attempt": 2})
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        super().__init__(logger, fields)

    def bind(self, **fields: Any) -> ContextBoundLogger:
        return ContextBoundLogger(self.logger, **{**(self.extra or {}), **fields})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **fields: Any) -> ContextBoundLogger:
    return ContextBoundLogger(logging.getLogger(name), **fields)
