"""Initial schema: restaurants, agent settings, call logs and usage billing.

Revision ID: 001_initial_billing_schema
Revises:
Create Date: 2026-10-16

"""

from alembic import op
import sqlalchemy as sa


revision = "001_initial_billing_schema"
down_revision = None
branch_labels = None
depends_on = None

plan_id = sa.Enum("starter", "growth", "pro", "unlimited", name="planid")
agent_mode = sa.Enum("agent", "forward", "offline", name="agentmode")
menu_override_status = sa.Enum("active", "deleted", name="menuoverridestatus")
call_status = sa.Enum("in-progress", "completed", "failed", name="callstatus")
usage_kind = sa.Enum("call", "minute", name="usagekind")


def upgrade() -> None:
    op.create_table(
        "billing_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("subscription_plan", plan_id, nullable=True),
        sa.Column("subscription_status", sa.String(), nullable=True),
        sa.Column("billing_cycle_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billing_cycle_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("monthly_calls_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_minutes_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("usage_reset_ref", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_subscription_id"),
    )
    op.create_index("ix_billing_accounts_id", "billing_accounts", ["id"])
    op.create_index("ix_billing_accounts_email", "billing_accounts", ["email"], unique=True)
    op.create_index("ix_billing_accounts_stripe_customer_id", "billing_accounts", ["stripe_customer_id"], unique=True)

    op.create_table(
        "subscription_prices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plan", plan_id, nullable=False),
        sa.Column("stripe_price_id", sa.String(), nullable=False),
        sa.Column("stripe_metered_price_id", sa.String(), nullable=True),
        sa.Column("monthly_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_calls", sa.Integer(), nullable=True),
        sa.Column("included_minutes", sa.Integer(), nullable=True),
        sa.Column("per_call_overage_cents", sa.Integer(), nullable=True),
        sa.Column("per_minute_overage_cents", sa.Integer(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plan"),
    )
    op.create_index("ix_subscription_prices_id", "subscription_prices", ["id"])

    op.create_table(
        "restaurants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_restaurants_id", "restaurants", ["id"])

    op.create_table(
        "agent_configurations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("billing_account_id", sa.Integer(), nullable=True),
        sa.Column("mode", agent_mode, nullable=False, server_default="agent"),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("redirect_phone_number", sa.String(), nullable=True),
        sa.Column("wait_time_minutes", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("default_wait_time_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("reset_wait_time_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["restaurant_id"], ["restaurants.id"]),
        sa.ForeignKeyConstraint(["billing_account_id"], ["billing_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("restaurant_id"),
        sa.UniqueConstraint("phone_number"),
    )
    op.create_index("ix_agent_configurations_id", "agent_configurations", ["id"])
    op.create_index("ix_agent_configurations_billing_account_id", "agent_configurations", ["billing_account_id"])

    op.create_table(
        "menu_overrides",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_configuration_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", menu_override_status, nullable=False, server_default="active"),
        sa.Column("last_modified_by", sa.String(), nullable=True),
        sa.Column("last_modified_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["agent_configuration_id"], ["agent_configurations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_menu_overrides_id", "menu_overrides", ["id"])
    op.create_index("ix_menu_overrides_agent_configuration_id", "menu_overrides", ["agent_configuration_id"])

    op.create_table(
        "call_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("customer_phone", sa.String(), nullable=False),
        sa.Column("twilio_call_sid", sa.String(), nullable=True),
        sa.Column("status", call_status, nullable=False, server_default="in-progress"),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("last_polled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usage_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["restaurant_id"], ["restaurants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_call_logs_id", "call_logs", ["id"])
    op.create_index("ix_call_logs_restaurant_id", "call_logs", ["restaurant_id"])
    op.create_index("ix_call_logs_twilio_call_sid", "call_logs", ["twilio_call_sid"], unique=True)

    op.create_table(
        "usage_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("billing_account_id", sa.Integer(), nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=True),
        sa.Column("kind", usage_kind, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reported_to_stripe", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stripe_usage_record_id", sa.String(), nullable=True),
        sa.Column("billing_period", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["billing_account_id"], ["billing_accounts.id"]),
        sa.ForeignKeyConstraint(["restaurant_id"], ["restaurants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_records_id", "usage_records", ["id"])
    op.create_index("ix_usage_records_billing_account_id", "usage_records", ["billing_account_id"])
    op.create_index("ix_usage_records_restaurant_id", "usage_records", ["restaurant_id"])
    op.create_index("ix_usage_records_reported_to_stripe", "usage_records", ["reported_to_stripe"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("billing_account_id", sa.Integer(), nullable=False),
        sa.Column("stripe_invoice_id", sa.String(), nullable=False),
        sa.Column("invoice_number", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("amount_due_cents", sa.Integer(), nullable=True),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(), nullable=True),
        sa.Column("billing_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billing_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pdf_url", sa.String(), nullable=True),
        sa.Column("hosted_invoice_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["billing_account_id"], ["billing_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoices_id", "invoices", ["id"])
    op.create_index("ix_invoices_billing_account_id", "invoices", ["billing_account_id"])
    op.create_index("ix_invoices_stripe_invoice_id", "invoices", ["stripe_invoice_id"], unique=True)


def downgrade() -> None:
    op.drop_table("invoices")
    op.drop_table("usage_records")
    op.drop_table("call_logs")
    op.drop_table("menu_overrides")
    op.drop_table("agent_configurations")
    op.drop_table("restaurants")
    op.drop_table("subscription_prices")
    op.drop_table("billing_accounts")
    bind = op.get_bind()
    for enum_type in (usage_kind, call_status, menu_override_status, agent_mode, plan_id):
        enum_type.drop(bind, checkfirst=True)
