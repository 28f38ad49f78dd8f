"""Payment model: one escrow record per booking, plus emitted payouts."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from gearshare.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Funds collected for a booking and their escrow custody state.

    ``version`` is an optimistic lock: a concurrent update of the same row
    fails with ``StaleDataError`` instead of silently overwriting.
    """

    __tablename__ = "payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
        index=True,
    )
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    escrow_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    escrow_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="held", index=True
    )  # held, released, refunded, disputed
    owner_payout_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    deposit_status: Mapped[str | None] = mapped_column(String(20), nullable=True)  # held, released, claimed, refunded
    deposit_refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Set once the authorized funds are captured; until then a refund voids the authorization
    captured_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payout_processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, escrow_status={self.escrow_status})>"


class Payout(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A transfer of released escrow funds to the equipment owner."""

    __tablename__ = "payouts"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, processing, completed, failed
    transfer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, payment_id={self.payment_id}, amount={self.amount}, status={self.status})>"
