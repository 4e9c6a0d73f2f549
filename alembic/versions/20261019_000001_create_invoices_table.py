"""Create invoices table

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

Creates the invoices table settled over x402. Amounts are stored as decimal
strings of the token's smallest unit.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the invoices table."""
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.String(length=78), nullable=False),
        sa.Column('currency', sa.String(length=16), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'paid', name='invoice_status', create_constraint=True),
            nullable=False,
            server_default='pending'
        ),
        sa.Column('merchant_address', sa.String(length=64), nullable=False),
        sa.Column('payment_url', sa.String(length=500), nullable=False),
        sa.Column('payer_address', sa.String(length=64), nullable=True),
        sa.Column('settlement_ref', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create indexes for common queries
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_merchant_address', 'invoices', ['merchant_address'])


def downgrade() -> None:
    """Drop the invoices table."""
    op.drop_index('ix_invoices_merchant_address', table_name='invoices')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_table('invoices')

    # Drop the enum type (PostgreSQL only)
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS invoice_status")
