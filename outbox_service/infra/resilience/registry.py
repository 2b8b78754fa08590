"""Process-wide registry holding one circuit breaker per destination."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.resilience.circuit_breaker import CircuitBreaker

if TYPE_CHECKING:
    from outbox_service.core.clock import Clock
    from outbox_service.core.settings import OutboxSettings

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Lazily creates and caches breakers keyed by destination name.

    Creation is serialized by an asyncio lock so concurrent workers asking for
    the same destination always share a single breaker. Breakers live for the
    lifetime of the registry; each process has its own view of destination
    health.
    """

    def __init__(self, settings: OutboxSettings | None = None, *, clock: Clock | None = None) -> None:
        self.settings = settings or get_outbox_settings()
        self.clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = asyncio.Lock()

    async def get(self, destination_name: str) -> CircuitBreaker:
        breaker = self._breakers.get(destination_name)
        if breaker is not None:
            return breaker

        async with self._lock:
            breaker = self._breakers.get(destination_name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=destination_name,
                    failure_threshold=self.settings.breaker_failure_threshold,
                    recovery_timeout=self.settings.breaker_recovery_timeout_seconds,
                    success_threshold=self.settings.breaker_success_threshold,
                    half_open_max_calls=self.settings.breaker_half_open_max_calls,
                    call_timeout=self.settings.breaker_call_timeout_seconds,
                    clock=self.clock,
                )
                self._breakers[destination_name] = breaker
                logger.debug(
                    "Circuit breaker registered",
                    extra={"circuit_breaker": destination_name, "registered": len(self._breakers)},
                )
            return breaker

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_metrics() for name, breaker in sorted(self._breakers.items())}

    async def reset_all(self) -> None:
        for breaker in list(self._breakers.values()):
            await breaker.reset()

    def __contains__(self, destination_name: object) -> bool:
        return destination_name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)


__all__ = ["CircuitBreakerRegistry"]
