"""Prometheus metrics: custom registry, metric definitions and tracking helpers."""

from outbox_service.infra.metrics import outbox, tracking
from outbox_service.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY", "outbox", "tracking"]
