"""Create entitlements, billing_accounts and todos tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_entitlements_and_todos'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the entitlement store, its reverse index and the todo table."""

    op.create_table(
        'entitlements',
        sa.Column('user_id', sa.String(128), primary_key=True),
        sa.Column('tier', sa.String(16), server_default='FREE', nullable=False),

        # Billing provider linkage
        sa.Column('billing_account_id', sa.String(255)),
        sa.Column('billing_subscription_id', sa.String(255)),
        sa.Column('payment_type', sa.String(16)),
        sa.Column('status', sa.String(16)),

        # Billing cycle
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default=sa.false(), nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_entitlements_billing_account_id',
        'entitlements',
        ['billing_account_id'],
    )

    # Reverse index: rows are never deleted
    op.create_table(
        'billing_accounts',
        sa.Column('billing_account_id', sa.String(255), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_billing_accounts_user_id', 'billing_accounts', ['user_id'])

    op.create_table(
        'todos',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.String(2000), server_default='', nullable=False),
        sa.Column('completed', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_todos_user_id', 'todos', ['user_id'])
    op.create_index('ix_todos_created_at', 'todos', ['created_at'])


def downgrade() -> None:
    """Drop all three tables."""
    op.drop_index('ix_todos_created_at', table_name='todos')
    op.drop_index('ix_todos_user_id', table_name='todos')
    op.drop_table('todos')

    op.drop_index('ix_billing_accounts_user_id', table_name='billing_accounts')
    op.drop_table('billing_accounts')

    op.drop_index('ix_entitlements_billing_account_id', table_name='entitlements')
    op.drop_table('entitlements')
