"""Loaders and helpers shared by the booking, escrow and claim services."""

import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.config import settings
from gearshare.core.availability import BLOCKING_STATUSES
from gearshare.core.lifecycle import BookingLifecycle
from gearshare.core.policy import policy_from_settings
from gearshare.models.booking import Booking
from gearshare.models.damage_claim import DamageClaim
from gearshare.models.equipment import Equipment, RateOverride
from gearshare.models.inspection import Inspection
from gearshare.models.payment import Payment


def default_lifecycle() -> BookingLifecycle:
    """Lifecycle built from the current settings' rental policy."""
    return BookingLifecycle(policy_from_settings(settings))


async def lock_equipment(db: AsyncSession, equipment_id: uuid.UUID) -> None:
    """Serialize booking writes for one piece of equipment (``SELECT … FOR UPDATE``)."""
    await db.execute(select(Equipment.id).where(Equipment.id == equipment_id).with_for_update())


async def booking_snapshot(
    db: AsyncSession,
    equipment_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> tuple[list[Booking], list[RateOverride]]:
    """Blocking bookings and calendar overrides that touch ``[start_date, end_date)``."""
    bookings = await db.execute(
        select(Booking).where(
            Booking.equipment_id == equipment_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_date < end_date,
            Booking.end_date > start_date,
        )
    )
    overrides = await db.execute(
        select(RateOverride).where(
            RateOverride.equipment_id == equipment_id,
            RateOverride.date >= start_date,
            RateOverride.date < end_date,
        )
    )
    return list(bookings.scalars().all()), list(overrides.scalars().all())


async def get_payment(db: AsyncSession, booking_id: uuid.UUID, for_update: bool = False) -> Payment | None:
    query = select(Payment).where(Payment.booking_id == booking_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_return_inspection(db: AsyncSession, booking_id: uuid.UUID) -> Inspection | None:
    result = await db.execute(
        select(Inspection).where(
            Inspection.booking_id == booking_id,
            Inspection.inspection_type == "return",
        )
    )
    return result.scalar_one_or_none()


async def get_claim(db: AsyncSession, booking_id: uuid.UUID) -> DamageClaim | None:
    result = await db.execute(select(DamageClaim).where(DamageClaim.booking_id == booking_id))
    return result.scalar_one_or_none()


async def get_claim_window_hours(db: AsyncSession, equipment_id: uuid.UUID) -> int | None:
    result = await db.execute(select(Equipment.claim_window_hours).where(Equipment.id == equipment_id))
    return result.scalar_one_or_none()
