"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FACTOR_COLUMNS = (
    "age_0_2_factor",
    "age_3_17_factor",
    "age_18_24_factor",
    "age_25_plus_base_factor",
    "age_factor_step",
    "smoker_factor",
    "condition_factor",
    "family_base_factor",
    "family_member_step",
    "region_urban_factor",
    "region_semi_urban_factor",
    "region_rural_factor",
    "bmi_overweight_factor",
    "bmi_obese_factor",
    "occ_class_2_factor",
    "occ_class_3_factor",
    "loyalty_discount_factor",
)


def upgrade() -> None:
    op.create_table(
        "policies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("policy_name", sa.Text(), nullable=False),
        sa.Column("insurance_type", sa.Text(), nullable=False, server_default="health"),
        sa.Column("company_name", sa.Text(), nullable=True),
        sa.Column("base_premium", sa.Numeric(12, 2), nullable=False),
        sa.Column("coverage_limit", sa.Numeric(14, 2), nullable=False),
        sa.Column("company_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("claim_settlement_ratio", sa.Float(), nullable=False, server_default="0"),
        sa.Column("waiting_period_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("copay_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("supports_smokers", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("covered_conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("exclusions", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *[sa.Column(name, sa.Float(), nullable=True) for name in FACTOR_COLUMNS],
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("is_smoker", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("weight_kg", sa.Float(), nullable=True),
        sa.Column("height_cm", sa.Float(), nullable=True),
        sa.Column("occupation_class", sa.Text(), nullable=True),
        sa.Column("region_type", sa.Text(), nullable=True),
        sa.Column("family_members", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("pre_existing_conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("budget_range", sa.Text(), nullable=True),
        sa.Column("coverage_type", sa.Text(), nullable=False, server_default="individual"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "buy_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("policy_id", sa.Integer(), sa.ForeignKey("policies.id"), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("billing_cycle", sa.Text(), nullable=False, server_default="yearly"),
        sa.Column("calculated_premium", sa.Numeric(12, 2), nullable=False),
        sa.Column("cycle_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("next_renewal_date", sa.Date(), nullable=True),
        sa.Column("renewal_status", sa.Text(), nullable=True),
        sa.Column("renewal_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("renewal_grace_reminders_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("renewal_grace_last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "policy_id", name="uq_buy_requests_user_policy"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("buy_request_id", sa.Integer(), sa.ForeignKey("buy_requests.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("policy_id", sa.Integer(), sa.ForeignKey("policies.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="NPR"),
        sa.Column("method", sa.Text(), nullable=True),
        sa.Column("provider_reference", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("meta", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_notified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("failed_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_buy_request_verified", "payments", ["buy_request_id", "is_verified"])

    op.create_table(
        "recommendation_impressions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("policy_id", sa.Integer(), sa.ForeignKey("policies.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("match_score", sa.Float(), nullable=False),
        sa.Column("variant", sa.Text(), nullable=False, server_default="control"),
        sa.Column("clicked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("purchased", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("time_spent_seconds", sa.Integer(), nullable=True),
        sa.Column("shown_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_impressions_policy_outcome", "recommendation_impressions", ["policy_id", "clicked", "purchased"])
    op.create_index("ix_impressions_user_shown", "recommendation_impressions", ["user_id", "shown_at"])
    op.create_index("ix_impressions_variant", "recommendation_impressions", ["variant"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("template_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_index("ix_impressions_variant", table_name="recommendation_impressions")
    op.drop_index("ix_impressions_user_shown", table_name="recommendation_impressions")
    op.drop_index("ix_impressions_policy_outcome", table_name="recommendation_impressions")
    op.drop_table("recommendation_impressions")
    op.drop_index("ix_payments_buy_request_verified", table_name="payments")
    op.drop_table("payments")
    op.drop_table("buy_requests")
    op.drop_table("clients")
    op.drop_table("policies")
