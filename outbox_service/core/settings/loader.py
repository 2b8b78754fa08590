"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process. In tests, clear the cache to force a reload:

    get_outbox_settings.cache_clear()

or construct the settings class directly with overrides:

    settings = OutboxSettings(max_attempts=2)
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .employees import EmployeeNotificationSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .postgres import PostgresSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings."""
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> PostgresSettings:
    """Get cached database settings."""
    return PostgresSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_outbox_settings() -> OutboxSettings:
    """Get cached outbox settings."""
    return OutboxSettings()


@lru_cache(maxsize=1)
def get_employee_notification_settings() -> EmployeeNotificationSettings:
    """Get cached employee notification settings."""
    return EmployeeNotificationSettings()


def clear_all_caches() -> None:
    """Clear every settings cache (tests and config reload)."""
    get_app_settings.cache_clear()
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_outbox_settings.cache_clear()
    get_employee_notification_settings.cache_clear()


__all__ = [
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_employee_notification_settings",
    "get_logging_settings",
    "get_outbox_settings",
]
