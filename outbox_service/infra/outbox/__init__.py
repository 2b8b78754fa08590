"""Transactional outbox for third-party notifications.

Writers call ``enqueue`` inside their business transaction; the dispatcher
delivers what was committed, retrying with exponential backoff and parking
exhausted records in the dead letter table.
"""

from outbox_service.infra.outbox.cleanup import OutboxCleanup
from outbox_service.infra.outbox.destinations import (
    Destination,
    DestinationResolver,
    SettingsDestinationResolver,
)
from outbox_service.infra.outbox.dispatcher import DispatchOutcome, DispatchReport, OutboxDispatcher
from outbox_service.infra.outbox.enqueue import OutboxEnqueuer, enqueue
from outbox_service.infra.outbox.envelope import NotificationEnvelope, parse_envelope
from outbox_service.infra.outbox.models import DeadLetterEntry, OutboxEntry, OutboxStatus
from outbox_service.infra.outbox.notifier import DestinationNotifier
from outbox_service.infra.outbox.repository import OutboxRecord, OutboxRepository
from outbox_service.infra.outbox.retry import RetryAction, RetryDecision, RetryPolicy
from outbox_service.infra.outbox.scheduler import OutboxScheduler

__all__ = [
    "DeadLetterEntry",
    "Destination",
    "DestinationNotifier",
    "DestinationResolver",
    "DispatchOutcome",
    "DispatchReport",
    "NotificationEnvelope",
    "OutboxCleanup",
    "OutboxDispatcher",
    "OutboxEnqueuer",
    "OutboxEntry",
    "OutboxRecord",
    "OutboxRepository",
    "OutboxScheduler",
    "OutboxStatus",
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "SettingsDestinationResolver",
    "enqueue",
    "parse_envelope",
]
