"""Outbox delivery configuration settings.

Controls claiming, retry/backoff, the dispatcher worker pool, cleanup
retention, circuit breaker thresholds and the destination catalogue.
"""

from __future__ import annotations

import os
import secrets

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_worker_id() -> str:
    return f"worker-{os.getpid()}-{secrets.token_hex(3)}"


class DestinationConfig(BaseModel):
    """Where and how to deliver notifications for one logical destination."""

    url: str = Field(min_length=1, description="Absolute URL receiving the POST")
    secret: SecretStr | None = Field(
        default=None,
        description="HMAC secret used when the envelope carries none",
    )
    token: SecretStr | None = Field(default=None, description="Bearer token")
    username: str | None = Field(default=None, description="Basic auth username")
    password: SecretStr | None = Field(default=None, description="Basic auth password")
    headers: dict[str, str] = Field(default_factory=dict, description="Static request headers")
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        le=300,
        description="Per-destination request timeout; falls back to request_timeout_seconds",
    )

    model_config = {"frozen": True}

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            msg = "destination url must start with http:// or https://"
            raise ValueError(msg)
        return value


class OutboxSettings(BaseSettings):
    """Configuration for the transactional outbox.

    Environment variables use OUTBOX_ prefix.
    Example: OUTBOX_MAX_ATTEMPTS=5, OUTBOX_DESTINATIONS='{"crm": {"url": "https://..."}}'
    """

    # Retry / backoff
    retry_base_delay_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Base delay for exponential backoff (delay = base * 2^(attempts-1))",
    )
    retry_max_delay_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional cap on the backoff delay; unbounded when unset",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Delivery attempts before a record is moved to the dead letter store",
    )

    # Claiming and dispatch
    claim_ttl_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Seconds after which a PROCESSING claim is considered abandoned",
    )
    batch_size: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum records selected per dispatch pass",
    )
    dispatcher_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Concurrent delivery workers per dispatch pass",
    )
    parallel_dispatch: bool = Field(
        default=True,
        description="Deliver claimed records concurrently; a single worker when disabled",
    )
    worker_id: str = Field(
        default_factory=_default_worker_id,
        min_length=1,
        max_length=255,
        description="Identity written to claimed_by",
    )

    # Enqueue
    enqueue_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Insert attempts for transient store failures before surfacing the error",
    )
    enqueue_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        le=60,
        description="Base delay between enqueue retries (doubles each attempt)",
    )

    # Scheduling and cleanup
    scheduler_enabled: bool = Field(
        default=True,
        description="Start the in-process dispatch and cleanup scheduler",
    )
    dispatch_interval_seconds: float = Field(
        default=30.0,
        ge=1,
        description="Seconds between dispatch passes",
    )
    cleanup_cron: str = Field(
        default="0 * * * *",
        min_length=9,
        description="Crontab expression for the cleanup sweep",
    )
    cleanup_interval_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Run the cleanup sweep on a fixed interval instead of cleanup_cron",
    )
    cleanup_retention_seconds: float = Field(
        default=7 * 24 * 60 * 60,
        description="Age after which COMPLETED/FAILED records are deleted; <= 0 disables cleanup",
    )

    # Outbound HTTP
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Default timeout for outbound notification requests",
    )

    # Circuit breaker
    breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before a destination's circuit opens",
    )
    breaker_recovery_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds an open circuit waits before admitting trial calls",
    )
    breaker_success_threshold: int = Field(
        default=2,
        ge=1,
        description="Successful trial calls needed to close a half-open circuit",
    )
    breaker_half_open_max_calls: int = Field(
        default=3,
        ge=1,
        description="Trial calls a half-open circuit lets run at the same time",
    )
    breaker_call_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound for one protected call; a timeout counts as a failure",
    )

    destinations: dict[str, DestinationConfig] = Field(
        default_factory=dict,
        description="Destination catalogue keyed by destination name (JSON in the environment)",
    )

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @field_validator("cleanup_cron")
    @classmethod
    def _validate_cleanup_cron(cls, value: str) -> str:
        if len(value.split()) != 5:
            msg = "cleanup_cron must be a five-field crontab expression"
            raise ValueError(msg)
        return value.strip()

    @model_validator(mode="after")
    def _validate_backoff_cap(self) -> OutboxSettings:
        if (
            self.retry_max_delay_seconds is not None
            and self.retry_max_delay_seconds < self.retry_base_delay_seconds
        ):
            msg = "retry_max_delay_seconds must be >= retry_base_delay_seconds"
            raise ValueError(msg)
        return self

    @property
    def cleanup_enabled(self) -> bool:
        return self.cleanup_retention_seconds > 0

    @property
    def effective_workers(self) -> int:
        return self.dispatcher_workers if self.parallel_dispatch else 1


__all__ = ["DestinationConfig", "OutboxSettings"]
