"""Transactional outbox for reliable third-party employee notifications."""

__version__ = "0.1.0"
