"""Modular settings, one pydantic-settings class per concern."""

from .app import AppSettings
from .employees import EmployeeNotificationSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_employee_notification_settings,
    get_logging_settings,
    get_outbox_settings,
)
from .logs import LoggingSettings
from .outbox import DestinationConfig, OutboxSettings
from .postgres import PostgresSettings

__all__ = [
    "AppSettings",
    "DestinationConfig",
    "EmployeeNotificationSettings",
    "LoggingSettings",
    "OutboxSettings",
    "PostgresSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_employee_notification_settings",
    "get_logging_settings",
    "get_outbox_settings",
]
