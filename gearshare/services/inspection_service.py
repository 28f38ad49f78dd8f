"""Inspection service: pickup and return condition reports."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.core.errors import InvalidTransition
from gearshare.core.lifecycle import ACTIVE
from gearshare.models.booking import Booking
from gearshare.models.inspection import Inspection

logger = logging.getLogger(__name__)

INSPECTION_TYPES = frozenset({"pickup", "return"})


async def record_inspection(
    db: AsyncSession,
    booking: Booking,
    actor_id: uuid.UUID,
    inspection_type: str,
    now: datetime,
    photos: list[str] | None = None,
    checklist_items: list[dict] | None = None,
    notes: str | None = None,
) -> Inspection:
    """Submit or confirm an inspection for an active booking.

    The caller's role decides which verification flag is set: the booking's
    owner verifies as owner, its renter as renter. The first submission
    creates the report; later ones add the other party's verification and
    any new photos. The return report's timestamp is reset when the renter
    first verifies it, so the claim window runs from the renter's
    confirmation.
    """
    if inspection_type not in INSPECTION_TYPES:
        raise InvalidTransition(booking.status, "inspect", f"Unknown inspection type '{inspection_type}'")
    if booking.status != ACTIVE:
        raise InvalidTransition(booking.status, "inspect", "Inspections can only be recorded for active bookings")

    is_owner = actor_id == booking.owner_id
    is_renter = actor_id == booking.renter_id

    result = await db.execute(
        select(Inspection).where(
            Inspection.booking_id == booking.id,
            Inspection.inspection_type == inspection_type,
        )
    )
    inspection = result.scalar_one_or_none()

    if inspection is None:
        inspection = Inspection(
            booking_id=booking.id,
            inspection_type=inspection_type,
            timestamp=now,
            verified_by_owner=is_owner,
            verified_by_renter=is_renter,
            photos=list(photos or []),
            checklist_items=list(checklist_items or []),
            notes=notes,
        )
        db.add(inspection)
        await db.flush()
        logger.info(
            "%s inspection %s created for booking %s by %s",
            inspection_type.capitalize(),
            inspection.id,
            booking.id,
            "owner" if is_owner else "renter",
        )
        return inspection

    if is_renter and not inspection.verified_by_renter:
        inspection.verified_by_renter = True
        if inspection_type == "return":
            inspection.timestamp = now
    if is_owner:
        inspection.verified_by_owner = True
    if photos:
        # Reassign so the JSON column is flagged dirty.
        inspection.photos = [*inspection.photos, *photos]
    if checklist_items:
        inspection.checklist_items = list(checklist_items)
    if notes:
        inspection.notes = notes
    await db.flush()
    logger.info(
        "%s inspection %s for booking %s verified (owner=%s renter=%s)",
        inspection_type.capitalize(),
        inspection.id,
        booking.id,
        inspection.verified_by_owner,
        inspection.verified_by_renter,
    )
    return inspection
