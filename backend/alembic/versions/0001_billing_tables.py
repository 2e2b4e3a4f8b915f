"""Create user_subscriptions and stripe_customers tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_billing_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create billing tables with row level security."""

    op.create_table(
        'user_subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('auth_user_id', postgresql.UUID(as_uuid=True), nullable=False),

        # Stripe IDs
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('stripe_subscription_id', sa.String(255)),
        sa.Column('price_id', sa.String(255)),

        # Subscription details
        sa.Column('status', sa.String(32), server_default='incomplete', nullable=False),
        sa.Column('subscription_type', sa.String(20), server_default='monthly', nullable=False),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),

        sa.CheckConstraint(
            "status IN ('active', 'trialing', 'canceled', 'incomplete', "
            "'incomplete_expired', 'past_due', 'unpaid')",
            name='ck_user_subscriptions_status',
        ),
        sa.CheckConstraint(
            "subscription_type IN ('monthly', 'yearly', 'free_trial')",
            name='ck_user_subscriptions_type',
        ),
    )

    # One subscription row per user; target of the verify upsert
    op.create_index(
        'ix_user_subscriptions_auth_user_id',
        'user_subscriptions',
        ['auth_user_id'],
        unique=True,
    )
    op.create_index(
        'ix_user_subscriptions_stripe_subscription_id',
        'user_subscriptions',
        ['stripe_subscription_id'],
    )
    op.create_index(
        'ix_user_subscriptions_stripe_customer_id',
        'user_subscriptions',
        ['stripe_customer_id'],
    )

    op.create_table(
        'stripe_customers',
        sa.Column('auth_user_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        'ix_stripe_customers_stripe_customer_id',
        'stripe_customers',
        ['stripe_customer_id'],
        unique=True,
    )

    # Enable RLS
    op.execute('ALTER TABLE user_subscriptions ENABLE ROW LEVEL SECURITY')
    op.execute('ALTER TABLE stripe_customers ENABLE ROW LEVEL SECURITY')

    # Users can read their own subscription (client fetch and realtime)
    op.execute("""
        CREATE POLICY "Users can view own subscription"
        ON user_subscriptions FOR SELECT
        TO authenticated
        USING (auth_user_id = auth.uid())
    """)

    # Only the backend writes billing data
    op.execute("""
        CREATE POLICY "Service role manages subscriptions"
        ON user_subscriptions FOR ALL
        TO service_role
        USING (true)
        WITH CHECK (true)
    """)
    op.execute("""
        CREATE POLICY "Service role manages stripe customers"
        ON stripe_customers FOR ALL
        TO service_role
        USING (true)
        WITH CHECK (true)
    """)

    # Push row changes to subscribed clients
    op.execute('ALTER PUBLICATION supabase_realtime ADD TABLE user_subscriptions')


def downgrade() -> None:
    """Drop billing tables."""

    op.execute('ALTER PUBLICATION supabase_realtime DROP TABLE user_subscriptions')

    op.execute('DROP POLICY IF EXISTS "Service role manages stripe customers" ON stripe_customers')
    op.execute('DROP POLICY IF EXISTS "Service role manages subscriptions" ON user_subscriptions')
    op.execute('DROP POLICY IF EXISTS "Users can view own subscription" ON user_subscriptions')

    op.drop_table('stripe_customers')
    op.drop_table('user_subscriptions')
