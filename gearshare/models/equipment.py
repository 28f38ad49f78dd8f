"""Equipment and rate override models: the rentable resources and their calendars."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gearshare.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Equipment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A piece of equipment listed for rent by its owner."""

    __tablename__ = "equipment"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # Hours the owner has to file a damage claim after a confirmed return. None = policy default.
    claim_window_hours: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    status: Mapped[str] = mapped_column(String(50), default="active")  # active, inactive

    rate_overrides: Mapped[list["RateOverride"]] = relationship(
        back_populates="equipment", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Equipment(id={self.id}, title={self.title!r}, daily_rate={self.daily_rate})>"


class RateOverride(UUIDPrimaryKeyMixin, Base):
    """Per-date price or availability exception for a piece of equipment."""

    __tablename__ = "rate_overrides"

    equipment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("equipment.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    custom_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    equipment: Mapped["Equipment"] = relationship(back_populates="rate_overrides")

    __table_args__ = (UniqueConstraint("equipment_id", "date", name="uq_rate_overrides_equipment_date"),)

    def __repr__(self) -> str:
        return f"<RateOverride(equipment_id={self.equipment_id}, date={self.date}, available={self.is_available})>"
