"""Versioned notification envelope stored in ``OutboxEntry.payload``.

Every persisted payload has the same shape::

    {"version": 1, "body": {...}, "secret": "optional", "headers": {"x-extra": "v"}}

``body`` is what gets POSTed to the destination. ``secret`` overrides the
destination's signing secret and ``headers`` are added to the request.

Rows written before ``version`` existed are stamped by an Alembic data
migration (``stamp_legacy_payload``), so the parser requires the field.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from outbox_service.core.exceptions import PayloadParseError

CURRENT_ENVELOPE_VERSION = 1


class NotificationEnvelope(BaseModel):
    """Payload schema for one outbound notification."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: Literal[1] = CURRENT_ENVELOPE_VERSION
    body: dict[str, Any]
    secret: str | None = Field(default=None, min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)

    def serialize(self) -> str:
        """Render the envelope for storage in the outbox."""
        return self.model_dump_json(exclude_none=True)

    def body_bytes(self) -> bytes:
        """Compact JSON encoding of ``body``, the exact bytes that are sent and signed."""
        return json.dumps(self.body, separators=(",", ":"), ensure_ascii=False, default=str).encode(
            "utf-8"
        )


def parse_envelope(raw: str | bytes) -> NotificationEnvelope:
    """Parse a stored payload.

    Raises:
        PayloadParseError: Invalid JSON, a non-object payload, a missing or
            unknown version, or a missing or non-object body.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PayloadParseError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadParseError(
            f"Payload must be a JSON object, got {type(data).__name__}",
        )

    if "version" not in data:
        raise PayloadParseError("Payload has no version")

    version = data["version"]
    if version != CURRENT_ENVELOPE_VERSION:
        raise PayloadParseError(
            f"Unsupported envelope version: {version!r}",
            extra={"version": version},
        )

    if "body" not in data:
        raise PayloadParseError("Payload has no body")

    try:
        return NotificationEnvelope.model_validate(data)
    except ValidationError as e:
        raise PayloadParseError(
            f"Payload does not match the notification envelope: {e.error_count()} error(s)",
            extra={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e


def stamp_legacy_payload(raw: str) -> str | None:
    """Add ``version`` to a payload written before the envelope was versioned.

    Returns the stamped payload, or None when there is nothing to stamp:
    the payload already has a version, or is not a JSON object with a body.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or "version" in data or "body" not in data:
        return None
    return json.dumps(
        {"version": CURRENT_ENVELOPE_VERSION, **data}, separators=(",", ":"), ensure_ascii=False
    )


__all__ = [
    "CURRENT_ENVELOPE_VERSION",
    "NotificationEnvelope",
    "parse_envelope",
    "stamp_legacy_payload",
]
