"""DamageClaim model: an owner's claim against a returned rental."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gearshare.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class DamageClaim(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """At most one per booking (unique ``booking_id``)."""

    __tablename__ = "damage_claims"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
        index=True,
    )
    filed_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    evidence_photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    repair_quotes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, accepted, disputed, escalated, resolved
    filed_at: Mapped[datetime] = mapped_column(nullable=False)

    # {"action": "accept" | "dispute" | "negotiate", "counter_offer": str | None,
    #  "notes": str | None, "responded_at": iso datetime}
    renter_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Settlement
    final_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    paid_from_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    additional_charge: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    escrow_to_owner: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    escrow_to_renter: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(50), nullable=True)  # renter_acceptance, agreement, arbitration

    def __repr__(self) -> str:
        return f"<DamageClaim(id={self.id}, booking_id={self.booking_id}, status={self.status})>"
