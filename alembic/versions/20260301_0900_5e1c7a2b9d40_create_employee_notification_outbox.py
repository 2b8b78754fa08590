"""create employee notification outbox

Revision ID: 5e1c7a2b9d40
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5e1c7a2b9d40'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the outbox table and its dead letter table."""
    op.create_table(
        'employee_notification_outbox',
        # Primary key (UUID v7 for time-ordering)
        sa.Column('id', sa.Uuid(), nullable=False),

        # Event identification
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('destination_name', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),

        # Delivery state
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_by', sa.String(length=255), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),

        # Tenancy and timestamps
        sa.Column('tenant_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id', name=op.f('pk_employee_notification_outbox'))
    )

    op.create_index(
        'ix_employee_notification_outbox_tenant_id',
        'employee_notification_outbox',
        ['tenant_id'],
        unique=False,
    )
    # Candidate selection: due PENDING rows in next_attempt_at order
    op.create_index(
        'ix_employee_notification_outbox_due',
        'employee_notification_outbox',
        ['status', 'next_attempt_at'],
        unique=False,
    )
    # Expired claim release
    op.create_index(
        'ix_employee_notification_outbox_claimed',
        'employee_notification_outbox',
        ['status', 'claimed_at'],
        unique=False,
    )
    # Cleanup of terminal rows by age
    op.create_index(
        'ix_employee_notification_outbox_cleanup',
        'employee_notification_outbox',
        ['status', 'updated_at'],
        unique=False,
    )

    op.create_table(
        'employee_notification_dlq',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('original_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('destination_name', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_employee_notification_dlq'))
    )
    op.create_index(
        'ix_employee_notification_dlq_original_id',
        'employee_notification_dlq',
        ['original_id'],
        unique=False,
    )
    op.create_index(
        'ix_employee_notification_dlq_failed_at',
        'employee_notification_dlq',
        ['failed_at'],
        unique=False,
    )
    op.create_index(
        'ix_employee_notification_dlq_tenant_id',
        'employee_notification_dlq',
        ['tenant_id'],
        unique=False,
    )


def downgrade() -> None:
    """Drop both outbox tables."""
    op.drop_index('ix_employee_notification_dlq_tenant_id', table_name='employee_notification_dlq')
    op.drop_index('ix_employee_notification_dlq_failed_at', table_name='employee_notification_dlq')
    op.drop_index('ix_employee_notification_dlq_original_id', table_name='employee_notification_dlq')
    op.drop_table('employee_notification_dlq')

    op.drop_index('ix_employee_notification_outbox_cleanup', table_name='employee_notification_outbox')
    op.drop_index('ix_employee_notification_outbox_claimed', table_name='employee_notification_outbox')
    op.drop_index('ix_employee_notification_outbox_due', table_name='employee_notification_outbox')
    op.drop_index('ix_employee_notification_outbox_tenant_id', table_name='employee_notification_outbox')
    op.drop_table('employee_notification_outbox')
