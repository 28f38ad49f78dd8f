"""initial_schema

Revision ID: 3f9c2b7d1e4a
Revises:
Create Date: 2026-06-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2b7d1e4a'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def _money(name: str, nullable: bool = False, default: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(10, 2),
        nullable=nullable,
        server_default=sa.text(default) if default is not None else None,
    )


def upgrade() -> None:
    # Needed for the equality operator on uuid inside a GiST exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "equipment",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("owner_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("daily_rate"),
        _money("deposit_amount", default="0"),
        sa.Column("claim_window_hours", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        *_timestamps(),
        sa.CheckConstraint("daily_rate > 0", name="ck_equipment_daily_rate_positive"),
    )
    op.create_index("ix_equipment_owner_id", "equipment", ["owner_id"])

    op.create_table(
        "rate_overrides",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("equipment_id", sa.UUID(), sa.ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        _money("custom_rate", nullable=True),
        sa.UniqueConstraint("equipment_id", "date", name="uq_rate_overrides_equipment_date"),
    )
    op.create_index("ix_rate_overrides_equipment_id", "rate_overrides", ["equipment_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("equipment_id", sa.UUID(), sa.ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False),
        sa.Column("renter_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("insurance_tier", sa.String(20), nullable=False, server_default="none"),
        _money("subtotal"),
        _money("service_fee"),
        _money("insurance_cost", default="0"),
        _money("deposit_amount", default="0"),
        _money("total_amount"),
        sa.Column("policy_version", sa.String(50), nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True, unique=True),
        sa.Column("activated_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_date < end_date", name="ck_bookings_date_order"),
    )
    op.create_index("ix_bookings_equipment_id", "bookings", ["equipment_id"])
    op.create_index("ix_bookings_renter_id", "bookings", ["renter_id"])
    op.create_index("ix_bookings_owner_id", "bookings", ["owner_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_equipment_dates", "bookings", ["equipment_id", "start_date", "end_date"])

    # No two blocking bookings for the same equipment may share a night.
    # daterange() is half-open by default, so back-to-back rentals are allowed.
    op.execute("""
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_no_overlap
        EXCLUDE USING gist (
            equipment_id WITH =,
            daterange(start_date, end_date) WITH &&
        )
        WHERE (status IN ('pending', 'approved', 'active'))
    """)

    op.create_table(
        "payments",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), nullable=True, unique=True),
        _money("total_amount"),
        _money("escrow_amount"),
        sa.Column("escrow_status", sa.String(20), nullable=False, server_default="held"),
        _money("owner_payout_amount", default="0"),
        _money("refunded_amount", default="0"),
        _money("deposit_amount", default="0"),
        sa.Column("deposit_status", sa.String(20), nullable=True),
        _money("deposit_refund_amount", nullable=True),
        sa.Column("payout_processed_at", sa.DateTime(), nullable=True),
        sa.Column("captured_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "owner_payout_amount + refunded_amount <= escrow_amount",
            name="ck_payments_escrow_conservation",
        ),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"], unique=True)
    op.create_index("ix_payments_escrow_status", "payments", ["escrow_status"])

    op.create_table(
        "payouts",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("payment_id", sa.UUID(), sa.ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("owner_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        _money("amount"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("transfer_id", sa.String(255), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payouts_payment_id", "payouts", ["payment_id"])
    op.create_index("ix_payouts_status", "payouts", ["status"])

    op.create_table(
        "inspections",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inspection_type", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("verified_by_owner", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_by_renter", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("photos", sa.JSON(), nullable=False),
        sa.Column("checklist_items", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(2000), nullable=True),
        sa.Column("auto_accepted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "inspection_type", name="uq_inspections_booking_type"),
    )
    op.create_index("ix_inspections_booking_id", "inspections", ["booking_id"])

    op.create_table(
        "damage_claims",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("booking_id", sa.UUID(), sa.ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("filed_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _money("estimated_cost"),
        sa.Column("evidence_photos", sa.JSON(), nullable=False),
        sa.Column("repair_quotes", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("filed_at", sa.DateTime(), nullable=False),
        sa.Column("renter_response", sa.JSON(), nullable=True),
        _money("final_amount", nullable=True),
        _money("paid_from_deposit", nullable=True),
        _money("additional_charge", nullable=True),
        _money("escrow_to_owner", nullable=True),
        _money("escrow_to_renter", nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.String(50), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("estimated_cost > 0", name="ck_damage_claims_estimated_cost_positive"),
    )
    op.create_index("ix_damage_claims_booking_id", "damage_claims", ["booking_id"], unique=True)
    op.create_index("ix_damage_claims_status", "damage_claims", ["status"])


def downgrade() -> None:
    op.drop_table("damage_claims")
    op.drop_table("inspections")
    op.drop_table("payouts")
    op.drop_table("payments")
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_no_overlap")
    op.drop_table("bookings")
    op.drop_table("rate_overrides")
    op.drop_table("equipment")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
