"""HTTP client that delivers one notification envelope to its destination."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import TYPE_CHECKING

import httpx

from outbox_service.core.exceptions import NotificationDeliveryError
from outbox_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from outbox_service.infra.outbox.destinations import Destination, DestinationResolver
    from outbox_service.infra.outbox.envelope import NotificationEnvelope

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

SIGNATURE_HEADER = "x-signature-sha256"
EVENT_TYPE_HEADER = "x-event-type"
CORRELATION_ID_HEADER = "x-correlation-id"

# Longest response excerpt carried into error messages
_RESPONSE_EXCERPT = 500


def sign_body(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class DestinationNotifier:
    """Delivers envelopes over HTTP POST.

    Handles:
    - Destination lookup through the resolver
    - HMAC-SHA256 signing of the exact bytes sent
    - Static headers, bearer or basic credentials
    - Mapping of non-2xx responses and transport errors to NotificationDeliveryError

    Retrying is the dispatcher's job; this client makes exactly one request
    per call.
    """

    def __init__(
        self,
        resolver: DestinationResolver,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.resolver = resolver
        self.timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this notifier created it."""
        if self._owns_client:
            await self._client.aclose()

    def build_headers(
        self,
        event_type: str,
        destination: Destination,
        envelope: NotificationEnvelope,
        body: bytes,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {EVENT_TYPE_HEADER: event_type}
        if correlation_id:
            headers[CORRELATION_ID_HEADER] = correlation_id
        headers.update(destination.headers)
        headers.update(envelope.headers)
        headers["content-type"] = "application/json"

        if destination.token:
            headers["authorization"] = f"Bearer {destination.token}"

        secret = envelope.secret or destination.secret
        if secret:
            headers[SIGNATURE_HEADER] = sign_body(secret, body)
        return headers

    async def dispatch(
        self,
        event_type: str,
        destination_name: str,
        envelope: NotificationEnvelope,
        *,
        correlation_id: str | None = None,
    ) -> httpx.Response:
        """POST ``envelope.body`` to the named destination.

        Returns:
            The 2xx response.

        Raises:
            DestinationNotFoundError: The destination is not configured.
            NotificationDeliveryError: Network error, timeout or non-2xx response.
        """
        destination = self.resolver.resolve(destination_name)
        body = envelope.body_bytes()
        headers = self.build_headers(
            event_type, destination, envelope, body, correlation_id=correlation_id
        )
        auth = (
            httpx.BasicAuth(destination.username, destination.password or "")
            if destination.username and not destination.token
            else None
        )
        timeout = destination.timeout_seconds or self.timeout_seconds

        lazy_logger.debug(
            lambda: f"notifier.dispatch: destination={destination_name}, "
            f"event_type={event_type}, url={destination.url}, bytes={len(body)}"
        )

        start_time = time.perf_counter()
        try:
            response = await self._client.post(
                destination.url,
                content=body,
                headers=headers,
                auth=auth if auth is not None else httpx.USE_CLIENT_DEFAULT,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise NotificationDeliveryError(
                f"Request to '{destination_name}' timed out after {timeout}s",
                destination_name=destination_name,
            ) from e
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                f"Request to '{destination_name}' failed: {type(e).__name__}: {e}",
                destination_name=destination_name,
            ) from e

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        if not response.is_success:
            excerpt = response.text[:_RESPONSE_EXCERPT] if response.text else ""
            logger.warning(
                "Notification rejected with non-2xx status",
                extra={
                    "destination": destination_name,
                    "event_type": event_type,
                    "status_code": response.status_code,
                    "response_time_ms": elapsed_ms,
                },
            )
            raise NotificationDeliveryError(
                f"Destination '{destination_name}' responded with HTTP {response.status_code}"
                + (f": {excerpt}" if excerpt else ""),
                response_status=response.status_code,
                destination_name=destination_name,
            )

        logger.info(
            "Notification delivered",
            extra={
                "destination": destination_name,
                "event_type": event_type,
                "status_code": response.status_code,
                "response_time_ms": elapsed_ms,
                "correlation_id": correlation_id,
            },
        )
        return response


__all__ = [
    "CORRELATION_ID_HEADER",
    "EVENT_TYPE_HEADER",
    "SIGNATURE_HEADER",
    "DestinationNotifier",
    "sign_body",
]
