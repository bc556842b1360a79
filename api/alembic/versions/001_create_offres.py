"""create_offres

Revision ID: 001
Revises:
Create Date: 2026-09-28 10:12:41.208311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('offres'):
        op.create_table('offres',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('external_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('location_label', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=255), nullable=True),
        sa.Column('postal_code', sa.String(length=20), nullable=True),
        sa.Column('departement', sa.String(length=3), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('contract_type', sa.String(length=120), nullable=True),
        sa.Column('work_time', sa.String(length=120), nullable=True),
        sa.Column('experience', sa.String(length=120), nullable=True),
        sa.Column('education_level', sa.String(length=255), nullable=True),
        sa.Column('rome_code', sa.String(length=20), nullable=True),
        sa.Column('rome_label', sa.String(length=255), nullable=True),
        sa.Column('salary_text', sa.String(length=255), nullable=True),
        sa.Column('salary_min', sa.Float(), nullable=True),
        sa.Column('salary_max', sa.Float(), nullable=True),
        sa.Column('source_url', sa.String(length=2048), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at_source', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'external_id', name='uq_offres_provider_external_id')
        )
        op.create_index(op.f('ix_offres_id'), 'offres', ['id'], unique=False)
        op.create_index('ix_offres_provider_active_dep', 'offres', ['provider', 'is_active', 'departement'], unique=False)
        op.create_index('ix_offres_published_at', 'offres', ['published_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table('offres'):
        indexes = [idx['name'] for idx in inspector.get_indexes('offres')]
        for name in ('ix_offres_published_at', 'ix_offres_provider_active_dep', 'ix_offres_id'):
            if name in indexes:
                op.drop_index(name, table_name='offres')
        op.drop_table('offres')
