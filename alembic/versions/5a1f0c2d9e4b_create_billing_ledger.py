"""create_billing_ledger

Revision ID: 5a1f0c2d9e4b
Revises:
Create Date: 2026-10-19 10:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5a1f0c2d9e4b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Plan catalogue
    op.create_table('billing_plans',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('monthly_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('annual_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('max_companies', sa.Integer(), nullable=False),
        sa.Column('max_users_per_company', sa.Integer(), nullable=False),
        sa.Column('included_tokens_monthly', sa.Integer(), nullable=False),
        sa.Column('module_keys', sa.JSON(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_plans_id'), 'billing_plans', ['id'], unique=False)
    op.create_index(op.f('ix_billing_plans_name'), 'billing_plans', ['name'], unique=True)

    # Subscriptions (token columns are a cache of billing_token_transactions)
    op.create_table('billing_subscriptions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.BigInteger(), nullable=False),
        sa.Column('plan_id', sa.BigInteger(), nullable=False),
        sa.Column('billing_cycle', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('current_period_start', sa.DateTime(), nullable=False),
        sa.Column('current_period_end', sa.DateTime(), nullable=False),
        sa.Column('next_billing_date', sa.DateTime(), nullable=False),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('included_tokens_remaining', sa.Integer(), nullable=False),
        sa.Column('purchased_tokens_balance', sa.Integer(), nullable=False),
        sa.Column('tokens_used_this_period', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('included_tokens_remaining >= 0', name='ck_subscription_included_non_negative'),
        sa.ForeignKeyConstraint(['plan_id'], ['billing_plans.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_subscriptions_id'), 'billing_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_billing_subscriptions_owner_id'), 'billing_subscriptions', ['owner_id'], unique=True)
    op.create_index(op.f('ix_billing_subscriptions_plan_id'), 'billing_subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_billing_subscriptions_status'), 'billing_subscriptions', ['status'], unique=False)
    op.create_index('idx_subscription_next_billing', 'billing_subscriptions', ['status', 'next_billing_date'], unique=False)

    # Token ledger
    op.create_table('billing_token_transactions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('included_balance_after', sa.Integer(), nullable=False),
        sa.Column('purchased_balance_after', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=100), nullable=True),
        sa.Column('reference_id', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['billing_subscriptions.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_billing_token_transactions_id'), 'billing_token_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_billing_token_transactions_subscription_id'), 'billing_token_transactions', ['subscription_id'], unique=False)
    op.create_index(op.f('ix_billing_token_transactions_type'), 'billing_token_transactions', ['type'], unique=False)
    op.create_index('idx_token_tx_subscription_created', 'billing_token_transactions', ['subscription_id', 'created_at'], unique=False)

    # Coupons
    op.create_table('billing_coupons',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('discount_type', sa.String(length=20), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False),
        sa.Column('max_uses_per_user', sa.Integer(), nullable=True),
        sa.Column('valid_from', sa.DateTime(), nullable=True),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('applicable_plan_ids', sa.JSON(), nullable=False),
        sa.Column('applicable_billing_cycles', sa.JSON(), nullable=False),
        sa.Column('min_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('first_payment_only', sa.Boolean(), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_coupons_id'), 'billing_coupons', ['id'], unique=False)
    op.create_index(op.f('ix_billing_coupons_code'), 'billing_coupons', ['code'], unique=True)

    op.create_table('billing_coupon_redemptions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('coupon_id', sa.BigInteger(), nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('applied_count', sa.Integer(), nullable=False),
        sa.Column('first_applied_at', sa.DateTime(), nullable=False),
        sa.Column('last_applied_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('last_invoice_id', sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(['coupon_id'], ['billing_coupons.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['subscription_id'], ['billing_subscriptions.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('coupon_id', 'subscription_id', name='uq_coupon_redemption_subscription')
    )
    op.create_index(op.f('ix_billing_coupon_redemptions_id'), 'billing_coupon_redemptions', ['id'], unique=False)
    op.create_index(op.f('ix_billing_coupon_redemptions_coupon_id'), 'billing_coupon_redemptions', ['coupon_id'], unique=False)
    op.create_index(op.f('ix_billing_coupon_redemptions_subscription_id'), 'billing_coupon_redemptions', ['subscription_id'], unique=False)

    # Invoices, lines and payments
    op.create_table('billing_invoices',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('discount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=True),
        sa.Column('period_end', sa.DateTime(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('plan_snapshot', sa.JSON(), nullable=True),
        sa.Column('coupon_id', sa.BigInteger(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('opened_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('void_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['coupon_id'], ['billing_coupons.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['subscription_id'], ['billing_subscriptions.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_invoices_id'), 'billing_invoices', ['id'], unique=False)
    op.create_index(op.f('ix_billing_invoices_number'), 'billing_invoices', ['number'], unique=True)
    op.create_index(op.f('ix_billing_invoices_subscription_id'), 'billing_invoices', ['subscription_id'], unique=False)
    op.create_index(op.f('ix_billing_invoices_status'), 'billing_invoices', ['status'], unique=False)
    op.create_index('idx_invoice_status_due', 'billing_invoices', ['status', 'due_date'], unique=False)
    op.create_index('idx_invoice_subscription_status', 'billing_invoices', ['subscription_id', 'status'], unique=False)

    op.create_table('billing_invoice_items',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.BigInteger(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('line_total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['billing_invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_invoice_items_id'), 'billing_invoice_items', ['id'], unique=False)
    op.create_index(op.f('ix_billing_invoice_items_invoice_id'), 'billing_invoice_items', ['invoice_id'], unique=False)

    op.create_table('billing_payments',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.BigInteger(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('provider_payment_id', sa.String(length=255), nullable=True),
        sa.Column('provider_reference', sa.String(length=500), nullable=True),
        sa.Column('received_by', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['billing_invoices.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_payments_id'), 'billing_payments', ['id'], unique=False)
    op.create_index(op.f('ix_billing_payments_invoice_id'), 'billing_payments', ['invoice_id'], unique=False)
    op.create_index(op.f('ix_billing_payments_status'), 'billing_payments', ['status'], unique=False)
    op.create_index(op.f('ix_billing_payments_provider_payment_id'), 'billing_payments', ['provider_payment_id'], unique=False)
    op.create_index('idx_payment_invoice_status', 'billing_payments', ['invoice_id', 'status'], unique=False)

    # Auto-payment
    op.create_table('billing_auto_payment_configs',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('payment_method_ref', sa.String(length=255), nullable=False),
        sa.Column('customer_ref', sa.String(length=255), nullable=True),
        sa.Column('card_brand', sa.String(length=30), nullable=True),
        sa.Column('card_last4', sa.String(length=4), nullable=True),
        sa.Column('card_exp_month', sa.Integer(), nullable=True),
        sa.Column('card_exp_year', sa.Integer(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('failed_attempts', sa.Integer(), nullable=False),
        sa.Column('last_failure_reason', sa.String(length=500), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('last_payment_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['billing_subscriptions.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_auto_payment_configs_id'), 'billing_auto_payment_configs', ['id'], unique=False)
    op.create_index(op.f('ix_billing_auto_payment_configs_subscription_id'), 'billing_auto_payment_configs', ['subscription_id'], unique=True)
    op.create_index(op.f('ix_billing_auto_payment_configs_is_enabled'), 'billing_auto_payment_configs', ['is_enabled'], unique=False)

    # Audit log (append-only)
    op.create_table('audit_log',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=False),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_log_id'), 'audit_log', ['id'], unique=False)
    op.create_index(op.f('ix_audit_log_actor'), 'audit_log', ['actor'], unique=False)
    op.create_index(op.f('ix_audit_log_action'), 'audit_log', ['action'], unique=False)
    op.create_index('idx_audit_entity', 'audit_log', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_log')
    op.drop_table('billing_auto_payment_configs')
    op.drop_table('billing_payments')
    op.drop_table('billing_invoice_items')
    op.drop_table('billing_invoices')
    op.drop_table('billing_coupon_redemptions')
    op.drop_table('billing_coupons')
    op.drop_table('billing_token_transactions')
    op.drop_table('billing_subscriptions')
    op.drop_table('billing_plans')
