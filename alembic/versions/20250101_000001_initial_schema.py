"""Initial market mirror schema

Revision ID: 20250101_000001
Revises: 
Create Date: 2025-01-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20250101_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the item catalog, listing mirror, trade history and statistics tables."""

    op.create_table(
        'item_class',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('marketplace', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('class_id', sa.String(255), nullable=True),
        sa.Column('suggested_price', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'market_listing',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column(
            'item_class_id', sa.String(255),
            sa.ForeignKey('item_class.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('float_value', sa.Float(), nullable=True),
        sa.Column('stickers', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # Cheapest-listing lookups per class
    op.create_index('ix_market_listing_item_class_price', 'market_listing', ['item_class_id', 'price'])

    op.create_table(
        'holding',
        sa.Column(
            'listing_id', sa.String(255),
            sa.ForeignKey('market_listing.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('item_class_id', sa.String(255), nullable=False),
        sa.Column('listed_price', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_holding_item_class_id', 'holding', ['item_class_id'])

    op.create_table(
        'balance',
        sa.Column('marketplace', sa.String(20), primary_key=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'trade_record',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'item_class_id', sa.String(255),
            sa.ForeignKey('item_class.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('traded_at', sa.BigInteger(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('float_value', sa.Float(), nullable=True),
        sa.Column('paint_index', sa.Integer(), nullable=True),
        sa.Column('paint_seed', sa.Integer(), nullable=True),
        sa.Column('phase_id', sa.Integer(), nullable=True),
        sa.Column('extras', sa.Integer(), nullable=True),
        sa.Column('stickers', sa.JSON(), nullable=True),
        sa.Column('operation_type', sa.String(32), nullable=True),
    )
    # Watermark lookups and chronological reads
    op.create_index('ix_trade_record_item_class_traded_at', 'trade_record', ['item_class_id', 'traded_at'])

    op.create_table(
        'price_statistics',
        sa.Column(
            'item_class_id', sa.String(255),
            sa.ForeignKey('item_class.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('mean_price', sa.Float(), nullable=False),
        sa.Column('sale_count', sa.Integer(), nullable=False),
        sa.Column('price_slope', sa.Float(), nullable=True),
        sa.Column('std_dev_price', sa.Float(), nullable=True),
        sa.Column('min_float', sa.Float(), nullable=True),
        sa.Column('max_float', sa.Float(), nullable=True),
        sa.Column('time_correlation', sa.Float(), nullable=True),
        sa.Column('last_update', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables in dependency order."""
    op.drop_table('price_statistics')
    op.drop_index('ix_trade_record_item_class_traded_at', table_name='trade_record')
    op.drop_table('trade_record')
    op.drop_table('balance')
    op.drop_index('ix_holding_item_class_id', table_name='holding')
    op.drop_table('holding')
    op.drop_index('ix_market_listing_item_class_price', table_name='market_listing')
    op.drop_table('market_listing')
    op.drop_table('item_class')
