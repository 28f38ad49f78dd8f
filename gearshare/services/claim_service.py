"""Damage claim service: filing, renter responses, escalation and resolution."""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.core.claim_window import ClaimWindow
from gearshare.core.claims import (
    CLAIM_ACCEPTED,
    CLAIM_PENDING,
    RESOLVED_BY_AGREEMENT,
    RESOLVED_BY_ARBITRATION,
    RESOLVED_BY_RENTER,
    ClaimSettlement,
    counter_offer_of,
    next_claim_status,
    record_response,
    settle_claim,
)
from gearshare.core.errors import AlreadyFiled, GearShareError, InvalidTransition, WindowClosed
from gearshare.core.lifecycle import ACTIVE, BookingLifecycle
from gearshare.models.booking import Booking
from gearshare.models.damage_claim import DamageClaim
from gearshare.services.common import (
    default_lifecycle,
    get_claim,
    get_claim_window_hours,
    get_payment,
    get_return_inspection,
)
from gearshare.services.escrow_service import flush_escrow, record_payout, refund_renter

logger = logging.getLogger(__name__)


async def evaluate_claim_window(
    db: AsyncSession,
    booking: Booking,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> ClaimWindow:
    lifecycle = lifecycle or default_lifecycle()
    inspection = await get_return_inspection(db, booking.id)
    hours = await get_claim_window_hours(db, booking.equipment_id)
    claim = await get_claim(db, booking.id)
    return lifecycle.evaluate_claim_window(inspection, hours, now, claim)


async def file_claim(
    db: AsyncSession,
    booking: Booking,
    filed_by: uuid.UUID,
    description: str,
    estimated_cost: Decimal,
    evidence_photos: list[str],
    now: datetime,
    repair_quotes: list[str] | None = None,
    lifecycle: BookingLifecycle | None = None,
) -> DamageClaim:
    """File the owner's damage claim and move the booking's escrow to disputed.

    The payment row is locked first, so a concurrent release either commits
    before the claim (and the claim is rejected) or waits and finds the escrow
    disputed. A claim filed after the deadline is still accepted as long as
    the release sweep has not yet recorded the return as auto-accepted.

    Raises:
        AlreadyFiled: the booking already has a claim.
        WindowClosed: the return is unconfirmed, owner-confirmed, or the window
            has lapsed and been auto-accepted.
    """
    lifecycle = lifecycle or default_lifecycle()
    if booking.status != ACTIVE:
        raise InvalidTransition(booking.status, "file claim", "Claims can only be filed for active bookings")

    payment = await get_payment(db, booking.id, for_update=True)
    if payment is None:
        raise InvalidTransition(booking.status, "file claim", "No payment is held for this booking")
    if await get_claim(db, booking.id) is not None:
        raise AlreadyFiled()

    inspection = await get_return_inspection(db, booking.id)
    hours = await get_claim_window_hours(db, booking.equipment_id)
    window = lifecycle.evaluate_claim_window(inspection, hours, now)
    late_but_unswept = window.auto_accepted and inspection.auto_accepted_at is None
    if not window.can_file_claim and not late_but_unswept:
        logger.warning("Claim for booking %s rejected: %s", booking.id, window.reason)
        raise WindowClosed(window.reason)

    try:
        lifecycle.ledger(payment).dispute()
    except GearShareError as exc:
        logger.warning("Escrow dispute rejected for payment %s: %s", payment.id, exc.message)
        raise

    claim = DamageClaim(
        booking_id=booking.id,
        filed_by=filed_by,
        description=description,
        estimated_cost=estimated_cost,
        evidence_photos=list(evidence_photos),
        repair_quotes=list(repair_quotes or []),
        status=CLAIM_PENDING,
        filed_at=now,
    )
    db.add(claim)
    await flush_escrow(db, payment, "dispute")
    logger.info(
        "Damage claim %s filed for booking %s (estimated %s); escrow %s disputed",
        claim.id,
        booking.id,
        estimated_cost,
        payment.id,
    )
    return claim


async def _settle(
    db: AsyncSession,
    claim: DamageClaim,
    final_amount: Decimal,
    now: datetime,
    resolved_by: str,
    lifecycle: BookingLifecycle,
    escrow_to_owner: Decimal | None = None,
) -> ClaimSettlement:
    """Apply a settlement to the claim's escrow, queue the payout and refund the renter.

    Everything the settlement needs is loaded before the payment row changes,
    so a stale payment only surfaces at the escrow flush.
    """
    booking = await db.get(Booking, claim.booking_id)
    payment = await get_payment(db, claim.booking_id, for_update=True)
    inspection = await get_return_inspection(db, booking.id)
    hours = await get_claim_window_hours(db, booking.equipment_id)
    try:
        settlement = settle_claim(
            claim,
            lifecycle.ledger(payment),
            final_amount,
            now,
            escrow_to_owner=escrow_to_owner,
            resolved_by=resolved_by,
        )
    except GearShareError as exc:
        logger.warning("Claim %s settlement rejected for payment %s: %s", claim.id, payment.id, exc.message)
        raise

    record_payout(db, booking, settlement.payout)
    window = lifecycle.evaluate_claim_window(inspection, hours, now, claim)
    if booking.status == ACTIVE and lifecycle.return_settled(window, claim):
        lifecycle.complete(booking, payment, window, claim, now)
    await flush_escrow(db, payment, "resolve")

    renter_refund = settlement.escrow_to_renter + (payment.deposit_refund_amount or Decimal("0.00"))
    await refund_renter(payment, renter_refund, f"claim-{claim.id}")
    if settlement.additional_charge > 0:
        logger.info(
            "Claim %s leaves %s to be charged to renter %s beyond the deposit",
            claim.id,
            settlement.additional_charge,
            booking.renter_id,
        )
    logger.info(
        "Claim %s settled by %s at %s: %s to owner, %s to renter, %s from deposit",
        claim.id,
        resolved_by,
        settlement.final_amount,
        settlement.escrow_to_owner,
        settlement.escrow_to_renter,
        settlement.paid_from_deposit,
    )
    return settlement


async def respond_to_claim(
    db: AsyncSession,
    claim: DamageClaim,
    action: str,
    now: datetime,
    counter_offer: Decimal | None = None,
    notes: str | None = None,
    lifecycle: BookingLifecycle | None = None,
) -> DamageClaim:
    """Record the renter's answer. Accepting settles the claim at its estimated cost."""
    lifecycle = lifecycle or default_lifecycle()
    record_response(claim, action, now, counter_offer=counter_offer, notes=notes)
    logger.info("Renter responded to claim %s: %s", claim.id, action)

    if claim.status == CLAIM_ACCEPTED:
        await _settle(db, claim, claim.estimated_cost, now, RESOLVED_BY_RENTER, lifecycle)
    else:
        await db.flush()
    return claim


async def accept_counter_offer(
    db: AsyncSession,
    claim: DamageClaim,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> DamageClaim:
    """Owner agrees to the renter's counter offer; the claim settles at that amount.

    Raises:
        InvalidTransition: the claim is not disputed or carries no counter offer.
    """
    lifecycle = lifecycle or default_lifecycle()
    amount = counter_offer_of(claim)
    await _settle(db, claim, amount, now, RESOLVED_BY_AGREEMENT, lifecycle)
    return claim


async def escalate_claim(db: AsyncSession, claim: DamageClaim) -> DamageClaim:
    claim.status = next_claim_status(claim.status, "escalate")
    await db.flush()
    logger.info("Claim %s escalated to arbitration", claim.id)
    return claim


async def resolve_claim(
    db: AsyncSession,
    claim: DamageClaim,
    final_amount: Decimal,
    now: datetime,
    escrow_to_owner: Decimal | None = None,
    lifecycle: BookingLifecycle | None = None,
) -> DamageClaim:
    """Record an arbitration decision on an escalated claim and split the escrow."""
    lifecycle = lifecycle or default_lifecycle()
    await _settle(db, claim, final_amount, now, RESOLVED_BY_ARBITRATION, lifecycle, escrow_to_owner=escrow_to_owner)
    return claim
