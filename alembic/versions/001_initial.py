"""Initial migration - create price_changes table

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'price_changes',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('item_id', sa.String(50), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('old_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('new_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=True, server_default='USD'),
        sa.Column('competitor_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('change_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('change_percentage', sa.Numeric(8, 2), nullable=False),
        sa.Column('change_direction', sa.String(10), nullable=False),
        sa.Column('strategy_id', sa.String(64), nullable=True),
        sa.Column('strategy_name', sa.String(100), nullable=True),
        sa.Column('repricing_rule', sa.String(20), nullable=True),
        sa.Column('min_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('competitor_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('source', sa.String(30), nullable=True, server_default='strategy'),
        sa.Column('push_method', sa.String(30), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('executed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('idx_price_changes_item', 'price_changes', ['item_id'])
    op.create_index('idx_price_changes_item_time', 'price_changes', ['item_id', 'executed_at'])


def downgrade() -> None:
    op.drop_index('idx_price_changes_item_time', table_name='price_changes')
    op.drop_index('idx_price_changes_item', table_name='price_changes')
    op.drop_table('price_changes')
