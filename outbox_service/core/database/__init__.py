"""Database foundation: declarative base, mixins and column types."""

from outbox_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TenantMixin,
    TimestampMixin,
    UUIDv7PKMixin,
    generate_uuid7,
)
from outbox_service.core.database.types import UTCDateTime

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "TenantMixin",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDv7PKMixin",
    "generate_uuid7",
]
