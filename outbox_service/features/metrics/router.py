"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    Outbox:
        - outbox_enqueued_total / outbox_enqueue_retry_success_total
        - outbox_dispatched_total / outbox_failed_total / outbox_dlq_total
        - outbox_pending - records waiting for delivery
        - outbox_dispatch_duration_seconds - delivery latency histogram
        - outbox_cleanup_deleted_total / outbox_scheduler_ticks_skipped_total

    Circuit breakers (per destination):
        - circuit_breaker_state, circuit_breaker_failures_total,
          circuit_breaker_successes_total, circuit_breaker_state_changes_total,
          circuit_breaker_rejected_total
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from outbox_service.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    """Expose the service registry in the Prometheus text format."""
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
