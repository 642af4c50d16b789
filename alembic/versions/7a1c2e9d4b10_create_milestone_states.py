"""Create milestone_states table

Revision ID: 7a1c2e9d4b10
Revises:
Create Date: 2026-10-19 09:12:41.503118

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = '7a1c2e9d4b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One JSON document per user: tiers, experiments and cached guide payloads
    op.create_table(
        'milestone_states',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('state', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False),
        sa.Column('current_tier', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_milestone_states_current_tier', 'milestone_states', ['current_tier'])


def downgrade() -> None:
    op.drop_index('idx_milestone_states_current_tier', table_name='milestone_states')
    op.drop_table('milestone_states')
