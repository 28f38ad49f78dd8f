"""Booking model: rental requests and agreements."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gearshare.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A renter's reservation of a piece of equipment for ``[start_date, end_date)``.

    The non-overlap guarantee for active reservations is an exclusion
    constraint created by the initial migration (PostgreSQL only).
    """

    __tablename__ = "bookings"

    equipment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("equipment.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default="pending",
        index=True,
    )  # pending, approved, active, completed, cancelled, declined

    # Price snapshot at request time
    insurance_tier: Mapped[str] = mapped_column(String(20), default="none")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    insurance_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    policy_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Set when a PaymentIntent is created; the Payment row only exists once funds are held.
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    equipment: Mapped["Equipment"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_bookings_date_order"),
        Index("ix_bookings_equipment_dates", "equipment_id", "start_date", "end_date"),
    )

    @property
    def amount_due(self) -> Decimal:
        """Rental total plus the refundable deposit."""
        return self.total_amount + self.deposit_amount

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, equipment_id={self.equipment_id}, renter_id={self.renter_id}, "
            f"status={self.status})>"
        )
