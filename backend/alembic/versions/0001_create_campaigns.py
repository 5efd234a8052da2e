"""create campaigns and coupon instances

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "campaigns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("discount_type", sa.String(length=13), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("minimum_purchase_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_issuance", sa.Integer(), nullable=True),
        sa.Column("issued_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("issued_count >= 0", name="ck_campaigns_issued_count_non_negative"),
        sa.CheckConstraint(
            "max_issuance IS NULL OR issued_count <= max_issuance", name="ck_campaigns_issued_count_within_capacity"
        ),
        sa.CheckConstraint("start_date < end_date", name="ck_campaigns_window_order"),
        sa.CheckConstraint(
            "(discount_type = 'fixed_amount' AND discount_amount IS NOT NULL AND discount_rate IS NULL)"
            " OR (discount_type = 'percentage' AND discount_rate IS NOT NULL AND discount_amount IS NULL)"
            " OR (discount_type = 'free_delivery' AND discount_amount IS NULL AND discount_rate IS NULL)",
            name="ck_campaigns_discount_shape",
        ),
    )
    op.create_index("ix_campaigns_code", "campaigns", ["code"], unique=True)

    op.create_table(
        "coupon_instances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("holder_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(status = 'used' AND used_at IS NOT NULL) OR (status != 'used' AND used_at IS NULL)",
            name="ck_coupon_instances_used_at_matches_status",
        ),
    )
    op.create_index("ix_coupon_instances_campaign_id", "coupon_instances", ["campaign_id"])
    op.create_index("ix_coupon_instances_holder_id", "coupon_instances", ["holder_id"])


def downgrade() -> None:
    op.drop_index("ix_coupon_instances_holder_id", table_name="coupon_instances")
    op.drop_index("ix_coupon_instances_campaign_id", table_name="coupon_instances")
    op.drop_table("coupon_instances")
    op.drop_index("ix_campaigns_code", table_name="campaigns")
    op.drop_table("campaigns")
