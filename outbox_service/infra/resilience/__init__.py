"""Resilience patterns protecting outbound notification calls."""

from outbox_service.infra.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from outbox_service.infra.resilience.registry import CircuitBreakerRegistry

__all__ = ["CircuitBreaker", "CircuitBreakerRegistry", "CircuitOpenError", "CircuitState"]
