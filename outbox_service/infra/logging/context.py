"""Context management for structured logging.

Context fields are kept in a ``ContextVar`` so each asyncio task (every
dispatcher worker, every request) carries its own copy, and a filter on the
log handlers copies them onto each ``LogRecord``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(worker_id="worker-12-a1b2c3", pass_id="...")
        logger.info("Claimed batch")  # record carries worker_id and pass_id
        ```
    """
    current = dict(_log_context.get() or {})
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    """Drop every field from the current logging context."""
    _log_context.set({})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily bind context fields, restoring the previous context on exit."""
    token = _log_context.set({**(_log_context.get() or {}), **kwargs})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy the contextvars log context onto each record.

    Installed on every handler by ``configure_logging`` so formatters (the
    JSON formatter in particular) see the fields without any call-site changes.
    Existing record attributes are never overwritten.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_log_context.get() or {}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


__all__ = [
    "ContextInjectingFilter",
    "clear_log_context",
    "get_log_context",
    "log_context",
    "set_log_context",
]
