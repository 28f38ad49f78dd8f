"""Inspection model: pickup and return condition reports."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gearshare.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Inspection(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Condition report for one booking at pickup or return.

    A return inspection opens the claim window once the renter has verified
    it; ``timestamp`` is when the report was submitted and anchors the
    window's deadline.
    """

    __tablename__ = "inspections"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    inspection_type: Mapped[str] = mapped_column(String(20), nullable=False)  # pickup, return
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    verified_by_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_by_renter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    photos: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # [{"item": str, "status": "good" | "fair" | "damaged", "notes": str | None}]
    checklist_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    # Set by the release sweep when an unanswered claim window is treated as acceptance
    auto_accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (UniqueConstraint("booking_id", "inspection_type", name="uq_inspections_booking_type"),)

    def __repr__(self) -> str:
        return f"<Inspection(id={self.id}, booking_id={self.booking_id}, type={self.inspection_type})>"
