"""Offer ids, monthly sales and reduced fee rates

Revision ID: 20250115_000002
Revises: 20250101_000001
Create Date: 2025-01-15

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20250115_000002'
down_revision: Union[str, None] = '20250101_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Track vendor offer ids, recent sales volume and per-class fee rates."""

    with op.batch_alter_table('market_listing') as batch_op:
        batch_op.add_column(sa.Column('offer_id', sa.String(255), nullable=True))

    with op.batch_alter_table('holding') as batch_op:
        batch_op.add_column(sa.Column('offer_id', sa.String(255), nullable=True))

    with op.batch_alter_table('price_statistics') as batch_op:
        batch_op.add_column(
            sa.Column('monthly_sales', sa.Integer(), nullable=False, server_default='0')
        )

    op.create_table(
        'fee_rate',
        sa.Column('marketplace', sa.String(20), primary_key=True),
        sa.Column('item_class_id', sa.String(255), primary_key=True),
        sa.Column('fraction', sa.Float(), nullable=False),
        sa.Column('expires_at', sa.BigInteger(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop the fee rate table and the added columns."""
    op.drop_table('fee_rate')

    with op.batch_alter_table('price_statistics') as batch_op:
        batch_op.drop_column('monthly_sales')

    with op.batch_alter_table('holding') as batch_op:
        batch_op.drop_column('offer_id')

    with op.batch_alter_table('market_listing') as batch_op:
        batch_op.drop_column('offer_id')
