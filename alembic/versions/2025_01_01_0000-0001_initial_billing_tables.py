"""initial_billing_tables

Revision ID: 0001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create plan, tenant, subscription, wallet, plan request and notification tables."""

    op.create_table(
        "billing_plans",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("limits", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "billing_tenants",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("shop_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("plan_id", sa.String(100), nullable=True),
        sa.Column("plan_status", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("plan_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("plan_expire_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "billing_subscriptions",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("tenant_id", sa.String(50), nullable=False, index=True),
        sa.Column("plan_id", sa.String(50), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_id", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("auto_renew", sa.Boolean(), nullable=False),
        sa.Column("renew_attempts", sa.Integer(), nullable=False),
        sa.Column("last_renewal_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_renewal_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_billing_subscriptions_tenant_status", "billing_subscriptions", ["tenant_id", "status"]
    )
    op.create_index(
        "ix_billing_subscriptions_status_end", "billing_subscriptions", ["status", "end_date"]
    )

    op.create_table(
        "billing_wallets",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("tenant_id", sa.String(50), nullable=False, index=True),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("ledger_sequence", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", name="uq_billing_wallets_tenant"),
    )

    op.create_table(
        "billing_transactions",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("tenant_id", sa.String(50), nullable=False, index=True),
        sa.Column("wallet_id", sa.String(50), nullable=True, index=True),
        sa.Column("sequence", sa.Integer(), nullable=True),
        sa.Column("transaction_type", sa.String(30), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_id", sa.String(255), nullable=True),
        sa.Column("refund_id", sa.String(100), nullable=True),
        sa.Column("refund_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_transaction_id", sa.String(50), nullable=True),
        sa.Column("subscription_id", sa.String(50), nullable=True, index=True),
        sa.Column("plan_id", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.String(50), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("wallet_id", "sequence", name="uq_billing_transactions_wallet_seq"),
    )
    op.create_index(
        "ix_billing_transactions_tenant_created",
        "billing_transactions",
        ["tenant_id", "created_at"],
    )
    op.create_index(
        "ix_billing_transactions_type_status",
        "billing_transactions",
        ["transaction_type", "status"],
    )

    op.create_table(
        "billing_plan_requests",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("tenant_id", sa.String(50), nullable=False, index=True),
        sa.Column("shop_name", sa.String(255), nullable=False),
        sa.Column("current_plan_id", sa.String(100), nullable=True),
        sa.Column("current_plan_name", sa.String(100), nullable=True),
        sa.Column("requested_plan_id", sa.String(100), nullable=False),
        sa.Column("requested_plan_name", sa.String(100), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("manual_method", sa.String(50), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("invoice_status", sa.String(20), nullable=False),
        sa.Column("reconciliation_status", sa.String(30), nullable=False),
        sa.Column("admin_comment", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.String(50), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_id", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_billing_plan_requests_status_created",
        "billing_plan_requests",
        ["status", "created_at"],
    )

    op.create_table(
        "billing_notifications",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("target", sa.String(50), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    """Drop all billing tables."""
    op.drop_table("billing_notifications")
    op.drop_index("ix_billing_plan_requests_status_created", table_name="billing_plan_requests")
    op.drop_table("billing_plan_requests")
    op.drop_index("ix_billing_transactions_type_status", table_name="billing_transactions")
    op.drop_index("ix_billing_transactions_tenant_created", table_name="billing_transactions")
    op.drop_table("billing_transactions")
    op.drop_table("billing_wallets")
    op.drop_index("ix_billing_subscriptions_status_end", table_name="billing_subscriptions")
    op.drop_index("ix_billing_subscriptions_tenant_status", table_name="billing_subscriptions")
    op.drop_table("billing_subscriptions")
    op.drop_table("billing_tenants")
    op.drop_table("billing_plans")
