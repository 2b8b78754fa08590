"""Settings for the employee-created third-party notification producer."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmployeeNotificationSettings(BaseSettings):
    """Where employee-created notifications are routed.

    Environment variables use THIRD_PARTY_EMPLOYEE_ prefix.
    Example: THIRD_PARTY_EMPLOYEE_DESTINATION=employee-sync
    """

    destination: str | None = Field(
        default=None,
        description="Outbox destination name; notifications are skipped when unset",
    )
    secret: SecretStr | None = Field(
        default=None,
        description="HMAC secret stamped into each envelope (overrides the destination secret)",
    )
    event_type: str = Field(
        default="EMPLOYEE_CREATED",
        min_length=1,
        max_length=100,
        description="Event type recorded on outbox entries",
    )

    model_config = SettingsConfigDict(
        env_prefix="THIRD_PARTY_EMPLOYEE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.destination and self.destination.strip())


__all__ = ["EmployeeNotificationSettings"]
