"""Outbox and circuit breaker metric definitions.

Every metric is registered on the service's custom ``REGISTRY``. Counters
carry ``event_type`` and ``destination`` labels so a single dashboard can
break delivery health down per destination.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from outbox_service.infra.metrics.prometheus import DELIVERY_LATENCY_BUCKETS, REGISTRY

# ============================================================================
# Outbox Metrics
# ============================================================================

outbox_enqueued_total = Counter(
    "outbox_enqueued_total",
    "Outbox records written by the enqueue service",
    ["event_type", "destination"],
    registry=REGISTRY,
)

outbox_enqueue_retry_success_total = Counter(
    "outbox_enqueue_retry_success_total",
    "Enqueue writes that succeeded after at least one transient failure",
    ["event_type", "destination"],
    registry=REGISTRY,
)

outbox_dispatched_total = Counter(
    "outbox_dispatched_total",
    "Outbox records delivered successfully",
    ["event_type", "destination"],
    registry=REGISTRY,
)

outbox_failed_total = Counter(
    "outbox_failed_total",
    "Failed delivery attempts (rescheduled or dead-lettered)",
    ["event_type", "destination"],
    registry=REGISTRY,
)

outbox_dlq_total = Counter(
    "outbox_dlq_total",
    "Outbox records moved to the dead letter store",
    ["event_type", "destination"],
    registry=REGISTRY,
)

outbox_pending = Gauge(
    "outbox_pending",
    "Outbox records waiting for delivery (PENDING or PROCESSING)",
    registry=REGISTRY,
)

outbox_dispatch_duration_seconds = Histogram(
    "outbox_dispatch_duration_seconds",
    "Duration of successful deliveries in seconds",
    ["event_type", "destination"],
    buckets=DELIVERY_LATENCY_BUCKETS,
    registry=REGISTRY,
)

outbox_cleanup_deleted_total = Counter(
    "outbox_cleanup_deleted_total",
    "Terminal outbox records removed by the cleanup sweeper",
    registry=REGISTRY,
)

outbox_scheduler_ticks_skipped_total = Counter(
    "outbox_scheduler_ticks_skipped_total",
    "Scheduler ticks skipped because the previous tick was still running",
    ["job"],
    registry=REGISTRY,
)

# ============================================================================
# Circuit Breaker Metrics
# ============================================================================

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_failures_total = Counter(
    "circuit_breaker_failures_total",
    "Total number of circuit breaker failures",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_successes_total = Counter(
    "circuit_breaker_successes_total",
    "Total number of circuit breaker successes",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_state_changes_total = Counter(
    "circuit_breaker_state_changes_total",
    "Total number of circuit breaker state changes",
    ["circuit_name", "from_state", "to_state"],
    registry=REGISTRY,
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Total number of requests rejected by circuit breaker",
    ["circuit_name"],
    registry=REGISTRY,
)
