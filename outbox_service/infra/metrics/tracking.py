"""Helper functions for tracking outbox and circuit breaker metrics.

Call sites use these helpers rather than touching metric objects directly,
which keeps label names in one place.
"""

from __future__ import annotations

from outbox_service.infra.metrics import outbox as metrics

# ============================================================================
# Outbox Tracking
# ============================================================================


def track_outbox_enqueued(event_type: str, destination: str, *, after_retry: bool = False) -> None:
    """Track a record written to the outbox.

    Args:
        event_type: Event type of the record
        destination: Destination name of the record
        after_retry: The write succeeded after at least one transient failure
    """
    metrics.outbox_enqueued_total.labels(event_type=event_type, destination=destination).inc()
    if after_retry:
        metrics.outbox_enqueue_retry_success_total.labels(
            event_type=event_type, destination=destination
        ).inc()


def track_outbox_dispatched(event_type: str, destination: str, duration: float) -> None:
    """Track a successful delivery and its latency.

    Example:
            track_outbox_dispatched("EMPLOYEE_CREATED", "employee-sync", 0.182)
    """
    metrics.outbox_dispatched_total.labels(event_type=event_type, destination=destination).inc()
    metrics.outbox_dispatch_duration_seconds.labels(
        event_type=event_type, destination=destination
    ).observe(duration)


def track_outbox_failed(event_type: str, destination: str) -> None:
    """Track a failed delivery attempt."""
    metrics.outbox_failed_total.labels(event_type=event_type, destination=destination).inc()


def track_outbox_dead_lettered(event_type: str, destination: str) -> None:
    """Track a record moved to the dead letter store."""
    metrics.outbox_dlq_total.labels(event_type=event_type, destination=destination).inc()


def update_outbox_pending(count: int) -> None:
    """Set the pending gauge to the latest count."""
    metrics.outbox_pending.set(count)


def track_outbox_cleanup(deleted: int) -> None:
    """Track records removed by the cleanup sweeper."""
    if deleted > 0:
        metrics.outbox_cleanup_deleted_total.inc(deleted)


def track_scheduler_tick_skipped(job: str) -> None:
    """Track a scheduler tick skipped by the reentrancy guard."""
    metrics.outbox_scheduler_ticks_skipped_total.labels(job=job).inc()


# ============================================================================
# Circuit Breaker Tracking
# ============================================================================


def update_circuit_breaker_state(circuit_name: str, state: str) -> None:
    """Update circuit breaker state gauge.

    Args:
        circuit_name: Name of the circuit breaker
        state: Current state ('closed', 'half_open', 'open')

    Example:
            update_circuit_breaker_state("employee-sync", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    metrics.circuit_breaker_state.labels(circuit_name=circuit_name).set(state_map.get(state, 0))


def track_circuit_breaker_failure(circuit_name: str) -> None:
    """Track a circuit breaker failure."""
    metrics.circuit_breaker_failures_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_success(circuit_name: str) -> None:
    """Track a circuit breaker success."""
    metrics.circuit_breaker_successes_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_state_change(circuit_name: str, from_state: str, to_state: str) -> None:
    """Track a circuit breaker state change.

    Args:
        circuit_name: Name of the circuit breaker
        from_state: Previous state
        to_state: New state
    """
    metrics.circuit_breaker_state_changes_total.labels(
        circuit_name=circuit_name,
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_circuit_breaker_rejected(circuit_name: str) -> None:
    """Track a request rejected by circuit breaker."""
    metrics.circuit_breaker_rejected_total.labels(circuit_name=circuit_name).inc()
