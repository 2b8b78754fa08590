"""Logging configuration setup.

Provides logging configuration using:
- dictConfig for the root logger and library log levels
- QueueHandler + QueueListener for non-blocking I/O
- ContextInjectingFilter for automatic context propagation
- All handlers on the root logger (child loggers propagate)
- JSONL format for machine parsing
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from outbox_service.infra.logging.context import ContextInjectingFilter
from outbox_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from outbox_service.core.settings.logs import LoggingSettings

_listener: QueueListener | None = None
_installed_handlers: list[logging.Handler] = []
_LOGGING_INITIALIZED = False
_ATEXIT_REGISTERED = False

_TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from outbox_service.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = {**settings_obj.to_logging_kwargs(), **configure_kwargs}
    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


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
    service_name: str = "outbox-service",
    use_queue: bool = True,
) -> None:
    """Configure logging with dictConfig and the QueueHandler pattern.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        console_level: Console handler level. If None, uses log_level.
        file_level: File handler level. If None, uses log_level.
        file_path: Path to log file. None disables file logging.
        json_logs: Enable JSONL (JSON Lines) structured logging.
        console_enabled: Enable console/stderr logging.
        include_context: Inject contextvars log context into every record.
        capture_warnings: Forward Python warnings to logging system.
        file_max_bytes: Maximum log file size before rotation.
        file_backup_count: Number of rotated log files to keep.
        service_name: Static ``service`` field for JSON records.
        use_queue: Route records through a QueueListener thread.
    """
    shutdown()

    if capture_warnings:
        logging.captureWarnings(True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
            "loggers": {
                # httpx logs every request at INFO
                "httpx": {"level": "WARNING"},
                "apscheduler": {"level": "WARNING"},
            },
        }
    )

    handlers = _build_handlers(
        console_enabled=console_enabled,
        console_level=console_level or log_level,
        file_path=Path(file_path) if file_path else None,
        file_level=file_level or log_level,
        file_max_bytes=file_max_bytes,
        file_backup_count=file_backup_count,
        json_logs=json_logs,
        service_name=service_name,
    )
    if not handlers:
        return

    root = logging.getLogger()
    if use_queue:
        _install_queue(root, handlers, include_context=include_context)
    else:
        for handler in handlers:
            if include_context:
                handler.addFilter(ContextInjectingFilter())
            root.addHandler(handler)
            _installed_handlers.append(handler)


def _build_handlers(
    *,
    console_enabled: bool,
    console_level: str,
    file_path: Path | None,
    file_level: str,
    file_max_bytes: int,
    file_backup_count: int,
    json_logs: bool,
    service_name: str,
) -> list[logging.Handler]:
    def make_formatter() -> logging.Formatter:
        if json_logs:
            return JSONFormatter(static={"service": service_name})
        return logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)

    handlers: list[logging.Handler] = []

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level.upper())
        console_handler.setFormatter(make_formatter())
        handlers.append(console_handler)

    if file_path:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level.upper())
        file_handler.setFormatter(make_formatter())
        handlers.append(file_handler)

    return handlers


def _install_queue(
    root: logging.Logger,
    handlers: list[logging.Handler],
    *,
    include_context: bool,
) -> None:
    global _listener, _ATEXIT_REGISTERED

    log_queue: Queue[logging.LogRecord] = Queue()
    queue_handler = QueueHandler(log_queue)
    # The filter runs on the caller's task so contextvars are still visible
    if include_context:
        queue_handler.addFilter(ContextInjectingFilter())

    _listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _listener.start()
    if not _ATEXIT_REGISTERED:
        atexit.register(shutdown)
        _ATEXIT_REGISTERED = True

    root.addHandler(queue_handler)
    _installed_handlers.append(queue_handler)


def shutdown() -> None:
    """Stop the QueueListener (flushing pending records) and detach our handlers."""
    global _listener

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    root = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()


__all__ = ["configure_logging", "setup_logging", "shutdown"]
