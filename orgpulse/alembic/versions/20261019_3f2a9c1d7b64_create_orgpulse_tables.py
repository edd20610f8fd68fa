"""create connection and billing snapshot tables

Revision ID: 3f2a9c1d7b64
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f2a9c1d7b64"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "user_connections",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("supabase_url", sa.String(length=2048), nullable=False),
        sa.Column("encrypted_key", sa.Text(), nullable=False),
        sa.Column("connection_name", sa.String(length=255), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_connections_user_id"), "user_connections", ["user_id"], unique=True)

    op.create_table(
        "stripe_subscriptions",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("plan_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("plan_interval", sa.String(length=10), nullable=False),
        sa.Column("plan_interval_count", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("cancellation_reason", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("coupon_id", sa.String(length=255), nullable=True),
        sa.Column("coupon_name", sa.String(length=255), nullable=True),
        sa.Column("coupon_percent_off", sa.Numeric(5, 2), nullable=True),
        sa.Column("coupon_amount_off", sa.Numeric(10, 2), nullable=True),
        sa.Column("coupon_duration", sa.String(length=20), nullable=True),
        sa.Column("discounted_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("subscription_metadata", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stripe_subscriptions_customer_id"), "stripe_subscriptions", ["customer_id"])
    op.create_index(op.f("ix_stripe_subscriptions_status"), "stripe_subscriptions", ["status"])
    op.create_index(op.f("ix_stripe_subscriptions_canceled_at"), "stripe_subscriptions", ["canceled_at"])

    op.create_table(
        "stripe_payments",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_refunded", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
        sa.Column("invoice_id", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("failure_message", sa.Text(), nullable=True),
        sa.Column("refunded", sa.Boolean(), nullable=False),
        _timestamp("synced_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_stripe_payments_customer_id"), "stripe_payments", ["customer_id"])
    op.create_index(op.f("ix_stripe_payments_status"), "stripe_payments", ["status"])
    op.create_index(op.f("ix_stripe_payments_created"), "stripe_payments", ["created"])

    op.create_table(
        "stripe_cancellations",
        sa.Column("subscription_id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("monthly_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("subscription_type", sa.String(length=20), nullable=False),
        sa.Column("days_as_customer", sa.Integer(), nullable=False),
        sa.Column("total_paid", sa.Numeric(10, 2), nullable=False),
        sa.Column("last_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("synced_at"),
        sa.PrimaryKeyConstraint("subscription_id"),
    )
    op.create_index(op.f("ix_stripe_cancellations_canceled_at"), "stripe_cancellations", ["canceled_at"])

    op.create_table(
        "stripe_coupons",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("percent_off", sa.Numeric(5, 2), nullable=True),
        sa.Column("amount_off", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("duration", sa.String(length=20), nullable=False),
        sa.Column("duration_in_months", sa.Integer(), nullable=True),
        sa.Column("times_redeemed", sa.Integer(), nullable=False),
        sa.Column("max_redemptions", sa.Integer(), nullable=True),
        sa.Column("valid", sa.Boolean(), nullable=False),
        _timestamp("synced_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "stripe_sync_metadata",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscriptions_count", sa.Integer(), nullable=False),
        sa.Column("payments_count", sa.Integer(), nullable=False),
        sa.Column("cancellations_count", sa.Integer(), nullable=False),
        sa.Column("customers_count", sa.Integer(), nullable=False),
        sa.Column("invoices_count", sa.Integer(), nullable=False),
        sa.Column("coupons_count", sa.Integer(), nullable=False),
        sa.Column("sync_status", sa.String(length=20), nullable=False),
        sa.Column("sync_error", sa.Text(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("stripe_sync_metadata")
    op.drop_table("stripe_coupons")
    op.drop_index(op.f("ix_stripe_cancellations_canceled_at"), table_name="stripe_cancellations")
    op.drop_table("stripe_cancellations")
    op.drop_index(op.f("ix_stripe_payments_created"), table_name="stripe_payments")
    op.drop_index(op.f("ix_stripe_payments_status"), table_name="stripe_payments")
    op.drop_index(op.f("ix_stripe_payments_customer_id"), table_name="stripe_payments")
    op.drop_table("stripe_payments")
    op.drop_index(op.f("ix_stripe_subscriptions_canceled_at"), table_name="stripe_subscriptions")
    op.drop_index(op.f("ix_stripe_subscriptions_status"), table_name="stripe_subscriptions")
    op.drop_index(op.f("ix_stripe_subscriptions_customer_id"), table_name="stripe_subscriptions")
    op.drop_table("stripe_subscriptions")
    op.drop_index(op.f("ix_user_connections_user_id"), table_name="user_connections")
    op.drop_table("user_connections")
