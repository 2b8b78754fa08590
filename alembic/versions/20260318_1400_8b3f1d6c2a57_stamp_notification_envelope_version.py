"""stamp notification envelope version

Revision ID: 8b3f1d6c2a57
Revises: 5e1c7a2b9d40
Create Date: 2026-03-18 14:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op
from outbox_service.infra.outbox.envelope import stamp_legacy_payload

# revision identifiers, used by Alembic.
revision: str = '8b3f1d6c2a57'
down_revision: str | None = '5e1c7a2b9d40'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


outbox = sa.table(
    'employee_notification_outbox',
    sa.column('id', sa.Uuid()),
    sa.column('payload', sa.Text()),
    sa.column('status', sa.String()),
)


def upgrade() -> None:
    """Add ``version`` to payloads written before the envelope was versioned."""
    bind = op.get_bind()
    # Completed rows are never parsed again
    rows = bind.execute(
        sa.select(outbox.c.id, outbox.c.payload).where(outbox.c.status != 'COMPLETED')
    ).all()

    for row_id, payload in rows:
        stamped = stamp_legacy_payload(payload)
        if stamped is not None:
            bind.execute(outbox.update().where(outbox.c.id == row_id).values(payload=stamped))


def downgrade() -> None:
    """Stamped payloads stay valid for the previous parser; nothing to undo."""
