"""Booking service: persistence around the booking lifecycle.

Each function loads what the lifecycle needs, lets it decide, then flushes.
Commit and rollback belong to the caller's session scope.
"""

import logging
import uuid
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.billing.stripe_client import authorize_payment, cancel_authorization
from gearshare.core.availability import OVERLAP, Conflict
from gearshare.core.errors import BookingConflict, InvalidTransition
from gearshare.core.escrow import DEPOSIT_HELD, HELD
from gearshare.core.lifecycle import APPROVED, BookingLifecycle
from gearshare.models.booking import Booking
from gearshare.models.equipment import Equipment
from gearshare.models.payment import Payment
from gearshare.services.common import (
    booking_snapshot,
    default_lifecycle,
    get_claim,
    get_claim_window_hours,
    get_payment,
    get_return_inspection,
    lock_equipment,
)
from gearshare.services.escrow_service import flush_escrow, refund_escrow

logger = logging.getLogger(__name__)

# Insert attempts before a lost race is reported as an overlap conflict.
_INSERT_ATTEMPTS = 2


async def request_booking(
    db: AsyncSession,
    equipment: Equipment,
    renter_id: uuid.UUID,
    start_date: date,
    end_date: date,
    insurance_tier: str = "none",
    lifecycle: BookingLifecycle | None = None,
) -> Booking:
    """Create a pending booking after checking availability and pricing it.

    The equipment row is locked for the duration of the transaction and the
    insert runs in a savepoint. If the database's overlap constraint still
    rejects the insert, another request won the race: the snapshot is reloaded
    and checked again once before the loss is reported as an overlap.

    Raises:
        BookingConflict: the range has conflicts, now or after a lost race.
    """
    lifecycle = lifecycle or default_lifecycle()

    for attempt in range(1, _INSERT_ATTEMPTS + 1):
        await lock_equipment(db, equipment.id)
        existing, overrides = await booking_snapshot(db, equipment.id, start_date, end_date)
        quote = lifecycle.request(equipment, start_date, end_date, existing, overrides, insurance_tier)
        pricing = quote.pricing

        booking = Booking(
            equipment_id=equipment.id,
            renter_id=renter_id,
            owner_id=equipment.owner_id,
            start_date=start_date,
            end_date=end_date,
            status="pending",
            insurance_tier=pricing.insurance_tier,
            subtotal=pricing.subtotal,
            service_fee=pricing.service_fee,
            insurance_cost=pricing.insurance_cost,
            deposit_amount=pricing.deposit,
            total_amount=pricing.total,
            policy_version=lifecycle.policy.version,
        )
        try:
            async with db.begin_nested():
                db.add(booking)
                await db.flush()
        except IntegrityError:
            logger.warning(
                "Booking insert for equipment %s (%s to %s) conflicted late, attempt %d",
                equipment.id,
                start_date,
                end_date,
                attempt,
            )
            continue

        logger.info(
            "Booking %s requested for equipment %s (%s to %s), total=%s",
            booking.id,
            equipment.id,
            start_date,
            end_date,
            booking.total_amount,
        )
        return booking

    raise BookingConflict(
        [Conflict(OVERLAP, "Selected dates were just booked by another request")]
    )


async def approve_booking(
    db: AsyncSession, booking: Booking, lifecycle: BookingLifecycle | None = None
) -> Booking:
    """Owner accepts a pending request. Availability is re-checked under the equipment lock."""
    lifecycle = lifecycle or default_lifecycle()
    await lock_equipment(db, booking.equipment_id)
    existing, overrides = await booking_snapshot(db, booking.equipment_id, booking.start_date, booking.end_date)
    lifecycle.approve(booking, existing, overrides)
    await db.flush()
    logger.info("Booking %s approved", booking.id)
    return booking


async def decline_booking(
    db: AsyncSession, booking: Booking, lifecycle: BookingLifecycle | None = None
) -> Booking:
    lifecycle = lifecycle or default_lifecycle()
    lifecycle.decline(booking)
    await db.flush()
    logger.info("Booking %s declined", booking.id)
    return booking


async def start_payment(db: AsyncSession, booking: Booking) -> dict:
    """Authorize the amount due for an approved booking with the payment processor.

    Returns the PaymentIntent id and client secret for the client to confirm.
    """
    if booking.status != APPROVED:
        raise InvalidTransition(booking.status, "pay", "Only approved bookings can be paid")
    if await get_payment(db, booking.id) is not None:
        raise InvalidTransition(booking.status, "pay", "Funds are already held for this booking")

    intent = await authorize_payment(
        booking_id=str(booking.id),
        amount=booking.amount_due,
        renter_id=str(booking.renter_id),
        owner_id=str(booking.owner_id),
        equipment_id=str(booking.equipment_id),
    )
    booking.payment_intent_id = intent.id
    await db.flush()
    logger.info("PaymentIntent %s created for booking %s", intent.id, booking.id)
    return {
        "booking_id": booking.id,
        "payment_intent_id": intent.id,
        "client_secret": getattr(intent, "client_secret", None),
        "amount": booking.amount_due,
    }


async def hold_payment(
    db: AsyncSession,
    booking: Booking,
    payment_intent_id: str | None,
    now: datetime,
) -> Payment:
    """Funds authorized: open the held escrow record for an approved booking.

    The booking stays approved until activation. Calling this again for a
    booking that already holds funds returns the existing record.
    """
    if booking.status != APPROVED:
        raise InvalidTransition(booking.status, "hold", "Only approved bookings can hold funds")
    payment = await get_payment(db, booking.id, for_update=True)
    if payment is not None:
        return payment

    payment = Payment(
        booking_id=booking.id,
        payment_intent_id=payment_intent_id,
        total_amount=booking.amount_due,
        escrow_amount=booking.subtotal + booking.insurance_cost,
        escrow_status=HELD,
        deposit_amount=booking.deposit_amount,
        deposit_status=DEPOSIT_HELD if booking.deposit_amount > 0 else None,
    )
    booking.payment_intent_id = payment_intent_id
    db.add(payment)
    await db.flush()
    logger.info(
        "Escrow %s held for booking %s at %s (payment %s, deposit %s)",
        payment.escrow_amount,
        booking.id,
        now,
        payment.id,
        payment.deposit_amount,
    )
    return payment


async def activate_booking(
    db: AsyncSession,
    booking: Booking,
    payment_intent_id: str | None,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Payment:
    """Payment captured: move the booking to active over its held escrow.

    The escrow record is opened here when no authorization webhook opened it.
    """
    lifecycle = lifecycle or default_lifecycle()
    payment = await hold_payment(db, booking, payment_intent_id, now)
    lifecycle.activate(booking, payment, now)
    if payment.captured_at is None:
        payment.captured_at = now
    await flush_escrow(db, payment, "activate")
    logger.info("Booking %s active over escrow %s (payment %s)", booking.id, payment.escrow_amount, payment.id)
    return payment


async def cancel_booking(
    db: AsyncSession,
    booking: Booking,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Booking:
    """Cancel a pending or approved booking, returning any money collected.

    Held escrow is refunded through the ledger. An authorization that never
    reached escrow is voided.

    Raises:
        ImmutableState: escrow has already been released or disputed.
        InvalidTransition: the booking is past approval.
    """
    lifecycle = lifecycle or default_lifecycle()
    payment = await get_payment(db, booking.id, for_update=True)
    if payment is not None:
        await refund_escrow(db, booking, payment, now, lifecycle)
        return booking

    lifecycle.cancel(booking, None, now)
    await db.flush()
    if booking.payment_intent_id:
        await cancel_authorization(booking.payment_intent_id)
    logger.info("Booking %s cancelled before any funds were held", booking.id)
    return booking


async def complete_booking(
    db: AsyncSession,
    booking: Booking,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Booking:
    """active → completed once the return is settled and escrow has left custody."""
    lifecycle = lifecycle or default_lifecycle()
    payment = await get_payment(db, booking.id)
    claim = await get_claim(db, booking.id)
    inspection = await get_return_inspection(db, booking.id)
    hours = await get_claim_window_hours(db, booking.equipment_id)
    window = lifecycle.evaluate_claim_window(inspection, hours, now, claim)
    lifecycle.complete(booking, payment, window, claim, now)
    await db.flush()
    logger.info("Booking %s completed", booking.id)
    return booking
