"""Time Machine schema - event log, members, view state

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Members (mirrored from the auth provider)
    op.create_table(
        'members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Append-only event log; related_event_id has no foreign key
    op.create_table(
        'time_machine_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('event_category', sa.String(50), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('related_event_id', sa.Uuid(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_time_machine_events_created_at', 'time_machine_events', ['created_at'])
    op.create_index('ix_time_machine_events_user_time', 'time_machine_events', ['user_id', 'created_at'])
    op.create_index('ix_time_machine_events_category_time', 'time_machine_events', ['event_category', 'created_at'])

    # Per-member UI snapshots
    op.create_table(
        'view_state_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('member_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('key', sa.String(500), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('member_id', 'key', name='uq_view_state_member_key'),
    )


def downgrade() -> None:
    op.drop_table('view_state_entries')
    op.drop_index('ix_time_machine_events_category_time', table_name='time_machine_events')
    op.drop_index('ix_time_machine_events_user_time', table_name='time_machine_events')
    op.drop_index('ix_time_machine_events_created_at', table_name='time_machine_events')
    op.drop_table('time_machine_events')
    op.drop_table('members')
