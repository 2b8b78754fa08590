"""Custom exception classes for the outbox service."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class.
    Follows RFC 7807 Problem Details for HTTP APIs.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier (used in RFC 7807 problem details).
        title: Short, human-readable summary of the problem type.
        instance: URI reference that identifies the specific occurrence of the problem.
        extra: Additional context-specific information about the error.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        titles = {
            400: "Bad Request",
            404: "Not Found",
            409: "Conflict",
            422: "Unprocessable Entity",
            500: "Internal Server Error",
            502: "Bad Gateway",
            503: "Service Unavailable",
            504: "Gateway Timeout",
        }
        return titles.get(status_code, "Error")


class OutboxError(AppException):
    """Root of every error raised by the outbox subsystem."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: int = 500,
        type: str = "outbox-error",
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, type=type, extra=extra)


class PayloadParseError(OutboxError):
    """Stored payload is not a valid notification envelope.

    This is a permanent content error: retrying never fixes it, so the record
    walks the retry path until it reaches the dead letter store.
    """

    def __init__(self, detail: str, *, extra: dict[str, Any] | None = None) -> None:
        super().__init__(detail, status_code=422, type="payload-parse-error", extra=extra)


class NotificationDeliveryError(OutboxError):
    """Outbound notification failed (network error or non-2xx response).

    Attributes:
        response_status: HTTP status returned by the destination, when one was received.
        destination_name: Logical destination the call was addressed to.
    """

    def __init__(
        self,
        detail: str,
        *,
        response_status: int | None = None,
        destination_name: str | None = None,
    ) -> None:
        self.response_status = response_status
        self.destination_name = destination_name
        super().__init__(
            detail,
            status_code=502,
            type="notification-delivery-error",
            extra={"response_status": response_status, "destination": destination_name},
        )


class DestinationNotFoundError(OutboxError):
    """No destination is configured under the requested name."""

    def __init__(self, destination_name: str) -> None:
        self.destination_name = destination_name
        super().__init__(
            f"Destination '{destination_name}' is not configured",
            status_code=404,
            type="destination-not-found",
            extra={"destination": destination_name},
        )


__all__ = [
    "AppException",
    "DestinationNotFoundError",
    "NotificationDeliveryError",
    "OutboxError",
    "PayloadParseError",
]
