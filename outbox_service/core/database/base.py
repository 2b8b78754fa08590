"""Declarative base and composable mixins for outbox models.

Models mix and match capabilities by inheriting from specific mixins:

    class DeliveryRecord(Base, UUIDv7PKMixin, TimestampMixin, TenantMixin):
        __tablename__ = "delivery_records"
        payload: Mapped[str] = mapped_column(Text)
"""

from __future__ import annotations

import os
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func

from outbox_service.core.database.types import UTCDateTime

# Predictable constraint names for migrations
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base with constraint naming convention.

    The table name defaults to the lowercase class name and can be
    overridden by setting ``__tablename__`` explicitly on the model.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()


def generate_uuid7() -> uuid.UUID:
    """Generate a UUID v7 (48-bit millisecond timestamp followed by random bits)."""
    timestamp_ms = int(time.time() * 1000)
    random_bytes = os.urandom(10)

    uuid_bytes = bytearray(16)
    uuid_bytes[0:6] = timestamp_ms.to_bytes(6, byteorder="big")
    uuid_bytes[6] = (random_bytes[0] & 0x0F) | 0x70  # Version 7
    uuid_bytes[7] = random_bytes[1]
    uuid_bytes[8] = (random_bytes[2] & 0x3F) | 0x80  # Variant
    uuid_bytes[9:16] = random_bytes[3:10]

    return uuid.UUID(bytes=bytes(uuid_bytes))


class UUIDv7PKMixin:
    """UUID v7 primary key (time-sortable).

    UUID v7 encodes the Unix timestamp in the first 48 bits, so later IDs sort
    after earlier ones and inserts keep good B-tree locality.
    """

    __allow_unmapped__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid7,
        comment="UUID v7 primary key (time-sortable)",
    )


class TimestampMixin:
    """Creation and last-modification timestamps.

    Uses both Python-side defaults (for test environments) and database
    server defaults (for direct SQL inserts). Outbox code that mutates rows
    through Core ``update()`` statements sets ``updated_at`` explicitly from
    its injected clock.
    """

    __allow_unmapped__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp of record creation",
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
        comment="Timestamp of last update",
    )


class TenantMixin:
    """Optional tenant association.

    Nullable so single-tenant deployments leave it empty. Outbox mutations
    carry ``tenant_id`` in their WHERE clauses so a record can only ever be
    touched within its own tenant.
    """

    __allow_unmapped__ = True

    tenant_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Tenant ID for multi-tenant isolation",
    )


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "TenantMixin",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "generate_uuid7",
]
