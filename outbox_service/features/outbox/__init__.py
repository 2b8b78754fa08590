"""Outbox operations API."""
