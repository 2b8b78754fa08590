"""Infrastructure: database, logging, metrics, resilience and the outbox itself."""
