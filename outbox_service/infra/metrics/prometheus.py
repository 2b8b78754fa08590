"""Prometheus registry shared by every metric the service exports."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

# Custom registry so tests and the /metrics endpoint never see default process collectors twice
REGISTRY = CollectorRegistry()

# Covers outbound call latency from 5ms to 30s
DELIVERY_LATENCY_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

__all__ = ["DELIVERY_LATENCY_BUCKETS", "REGISTRY"]
