"""Stripe webhook event handlers: move bookings along as their payments settle."""

import logging
import uuid

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.billing.stripe_client import capture_payment
from gearshare.core.clock import utcnow
from gearshare.core.lifecycle import APPROVED
from gearshare.models.booking import Booking
from gearshare.services.booking_service import activate_booking, hold_payment
from gearshare.services.common import get_payment

logger = logging.getLogger(__name__)


def _booking_id_from_metadata(intent: stripe.PaymentIntent) -> uuid.UUID | None:
    metadata = getattr(intent, "metadata", None) or {}
    try:
        return uuid.UUID(metadata["booking_id"])
    except (KeyError, TypeError, ValueError):
        return None


async def get_booking_for_intent(db: AsyncSession, intent: stripe.PaymentIntent) -> Booking | None:
    """Find the booking a PaymentIntent was created for."""
    result = await db.execute(select(Booking).where(Booking.payment_intent_id == intent.id))
    booking = result.scalar_one_or_none()
    if booking is not None:
        return booking
    booking_id = _booking_id_from_metadata(intent)
    return await db.get(Booking, booking_id) if booking_id else None


async def _approved_booking(db: AsyncSession, intent: stripe.PaymentIntent) -> Booking | None:
    booking = await get_booking_for_intent(db, intent)
    if booking is None:
        logger.warning("No booking found for PaymentIntent %s", intent.id)
        return None
    if booking.status != APPROVED:
        logger.info("Booking %s already processed for PaymentIntent %s, skipping", booking.id, intent.id)
        return None
    return booking


async def handle_amount_capturable_updated(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.amount_capturable_updated: hold the funds in escrow and capture them.

    The booking stays approved until ``payment_intent.succeeded`` reports the
    capture. A failed capture leaves the escrow held but uncaptured, so a
    cancellation voids the authorization instead of refunding it.
    """
    intent = event.data.object
    booking = await _approved_booking(db, intent)
    if booking is None:
        return
    payment = await hold_payment(db, booking, intent.id, utcnow())
    if payment.captured_at is not None:
        logger.info("PaymentIntent %s already captured for booking %s", intent.id, booking.id)
        return

    try:
        await capture_payment(intent.id)
    except stripe.StripeError as exc:
        logger.warning("Capture of PaymentIntent %s for booking %s failed: %s", intent.id, booking.id, exc)
        return
    payment.captured_at = utcnow()
    await db.flush()


async def handle_payment_succeeded(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.succeeded: activate the rental over its held escrow."""
    intent = event.data.object
    booking = await _approved_booking(db, intent)
    if booking is None:
        return
    await activate_booking(db, booking, intent.id, utcnow())


async def handle_payment_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle payment_intent.payment_failed and payment_intent.canceled.

    The booking stays approved. An uncaptured escrow hold for the intent is
    dropped and the stale intent cleared so the renter can start a new payment.
    """
    intent = event.data.object
    booking = await get_booking_for_intent(db, intent)
    if booking is None:
        logger.warning("No booking found for failed PaymentIntent %s", intent.id)
        return
    if booking.status == APPROVED:
        payment = await get_payment(db, booking.id, for_update=True)
        if payment is not None and payment.payment_intent_id == intent.id and payment.captured_at is None:
            await db.delete(payment)
            logger.info("Dropped uncaptured escrow hold %s for booking %s", payment.id, booking.id)
        if booking.payment_intent_id == intent.id:
            booking.payment_intent_id = None
        await db.flush()
    logger.warning("Payment %s for booking %s did not complete (%s)", intent.id, booking.id, event.type)
