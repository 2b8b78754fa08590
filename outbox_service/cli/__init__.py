"""Command line interface for outbox-service."""
