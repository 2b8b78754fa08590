"""Core building blocks: settings, database base classes, clock and exceptions."""
