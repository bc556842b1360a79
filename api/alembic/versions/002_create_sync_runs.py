"""create_sync_runs

Revision ID: 002
Revises: 001
Create Date: 2026-09-28 10:31:05.774920

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, Sequence[str], None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('sync_runs'):
        op.create_table('sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='running', nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('partitions_total', sa.Integer(), server_default='0', nullable=False),
        sa.Column('partitions_failed', postgresql.ARRAY(sa.String(length=3)), server_default='{}', nullable=False),
        sa.Column('fetched_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('upserted_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('deactivated_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_sync_runs_id'), 'sync_runs', ['id'], unique=False)
        op.create_index(op.f('ix_sync_runs_provider'), 'sync_runs', ['provider'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table('sync_runs'):
        indexes = [idx['name'] for idx in inspector.get_indexes('sync_runs')]
        for name in ('ix_sync_runs_provider', 'ix_sync_runs_id'):
            if name in indexes:
                op.drop_index(name, table_name='sync_runs')
        op.drop_table('sync_runs')
