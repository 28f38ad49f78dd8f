"""Escrow service: releases, sweeps and owner payouts.

Escrow rows are read ``FOR UPDATE`` and carry an optimistic ``version``; a
write that lost a race surfaces as :class:`ConcurrentModification`.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import stripe
from sqlalchemy import Select, and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from gearshare.billing.stripe_client import cancel_authorization, create_transfer, refund_payment
from gearshare.config import settings
from gearshare.core.claim_window import ClaimWindow
from gearshare.core.errors import ConcurrentModification, GearShareError, InvalidTransition
from gearshare.core.escrow import DEPOSIT_HELD, HELD, REFUND, RELEASE, PayoutInstruction
from gearshare.core.lifecycle import ACTIVE, APPROVED, PENDING, BookingLifecycle, claim_is_open
from gearshare.models.booking import Booking
from gearshare.models.damage_claim import DamageClaim
from gearshare.models.equipment import Equipment
from gearshare.models.inspection import Inspection
from gearshare.models.payment import Payment, Payout
from gearshare.models.user import User
from gearshare.services.common import (
    default_lifecycle,
    get_claim,
    get_claim_window_hours,
    get_payment,
    get_return_inspection,
)

logger = logging.getLogger(__name__)


async def flush_escrow(db: AsyncSession, payment: Payment, event: str) -> None:
    """Flush an escrow change, translating a stale optimistic lock."""
    try:
        await db.flush()
    except StaleDataError as exc:
        logger.warning("Escrow %s on payment %s lost a concurrent update", event, payment.id)
        raise ConcurrentModification() from exc


async def lock_payment(db: AsyncSession, payment_id: uuid.UUID) -> Payment | None:
    """Re-read a payment row under ``FOR UPDATE`` with fresh column values."""
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def record_payout(db: AsyncSession, booking: Booking, instruction: PayoutInstruction | None) -> Payout | None:
    """Queue a pending owner payout for a ledger payout instruction."""
    if instruction is None or instruction.amount <= 0:
        return None
    payout = Payout(
        payment_id=instruction.payment_id,
        booking_id=instruction.booking_id,
        owner_id=booking.owner_id,
        amount=instruction.amount,
        status="pending",
    )
    db.add(payout)
    logger.info(
        "Payout of %s queued for owner %s (booking %s)",
        instruction.amount,
        booking.owner_id,
        booking.id,
    )
    return payout


async def refund_renter(payment: Payment, amount: Decimal | None, reason_key: str) -> None:
    """Send money back to the renter through the payment processor."""
    if not payment.payment_intent_id or amount is None or amount <= 0:
        return
    await refund_payment(payment.payment_intent_id, amount, reason_key)


# ---------------------------------------------------------------------------
# Direct transitions
# ---------------------------------------------------------------------------


async def release_escrow(
    db: AsyncSession,
    booking: Booking,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Payment:
    """Release held escrow to the owner and return the renter's deposit.

    A release request is the owner's acceptance of the return: if the renter
    has confirmed the return inspection, it is marked owner-verified and the
    booking is completed.

    Raises:
        InvalidTransition: there is no held escrow for the booking.
        OpenClaimExists: a damage claim is still open.
        ReleaseNotYetEligible: the release buffer has not passed.
        ConcurrentModification: the payment changed underneath this release.
    """
    lifecycle = lifecycle or default_lifecycle()
    payment = await get_payment(db, booking.id, for_update=True)
    if payment is None:
        raise InvalidTransition(booking.status, RELEASE, "No payment has been captured for this booking")

    # Load before the ledger changes the payment; a later query would autoflush it.
    claim = await get_claim(db, booking.id)
    inspection = await get_return_inspection(db, booking.id)
    hours = await get_claim_window_hours(db, booking.equipment_id)

    ledger = lifecycle.ledger(payment)
    try:
        instruction = ledger.release(booking.end_date, now, has_open_claim=claim_is_open(claim))
    except GearShareError as exc:
        logger.warning("Escrow release rejected for payment %s: %s", payment.id, exc.message)
        raise

    deposit_refund = ledger.release_deposit() if payment.deposit_status == DEPOSIT_HELD else None
    record_payout(db, booking, instruction)

    if inspection is not None and inspection.verified_by_renter and not inspection.verified_by_owner:
        inspection.verified_by_owner = True
    window = lifecycle.evaluate_claim_window(inspection, hours, now, claim)
    if booking.status == ACTIVE and lifecycle.return_settled(window, claim):
        lifecycle.complete(booking, payment, window, claim, now)

    await flush_escrow(db, payment, RELEASE)
    await refund_renter(payment, deposit_refund, f"deposit-{payment.id}")
    logger.info("Escrow released for payment %s: %s to owner", payment.id, instruction.amount)
    return payment


async def refund_escrow(
    db: AsyncSession,
    booking: Booking,
    payment: Payment,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Payment:
    """Cancel a booking that has not started and refund its held escrow.

    Captured funds go back to the renter in full; an authorization that was
    never captured is voided instead.

    Raises:
        ImmutableState: escrow has already been released or disputed.
        InvalidTransition: the booking is past approval.
    """
    lifecycle = lifecycle or default_lifecycle()
    try:
        amount = lifecycle.cancel(booking, payment, now, refund_eligible=booking.status in (PENDING, APPROVED))
    except GearShareError as exc:
        logger.warning("Escrow refund rejected for payment %s: %s", payment.id, exc.message)
        raise
    await flush_escrow(db, payment, REFUND)

    if payment.payment_intent_id and payment.captured_at is not None:
        await refund_payment(payment.payment_intent_id, payment.total_amount, f"cancel-{booking.id}")
    elif payment.payment_intent_id:
        await cancel_authorization(payment.payment_intent_id)
    logger.info("Booking %s cancelled; escrow %s refunded from payment %s", booking.id, amount, payment.id)
    return payment


async def transition_escrow(
    db: AsyncSession,
    payment: Payment,
    event: str,
    now: datetime,
    lifecycle: BookingLifecycle | None = None,
) -> Payment:
    """Apply a named escrow event (``release`` or ``refund``) to a payment."""
    booking = await db.get(Booking, payment.booking_id)
    if event == RELEASE:
        return await release_escrow(db, booking, now, lifecycle)
    if event == REFUND:
        locked = await lock_payment(db, payment.id)
        return await refund_escrow(db, booking, locked, now, lifecycle)
    logger.warning("Unknown escrow event %r for payment %s", event, payment.id)
    raise InvalidTransition(payment.escrow_status, event, f"Unknown escrow event '{event}'")


# ---------------------------------------------------------------------------
# Release sweep
# ---------------------------------------------------------------------------


def _sweep_candidates(cutoff: date) -> Select:
    """Held escrow on unclaimed active bookings past the buffer with a renter-confirmed return."""
    return (
        select(Payment, Booking, Inspection, Equipment.claim_window_hours)
        .join(Booking, Booking.id == Payment.booking_id)
        .join(Inspection, and_(Inspection.booking_id == Booking.id, Inspection.inspection_type == "return"))
        .join(Equipment, Equipment.id == Booking.equipment_id)
        .where(
            Payment.escrow_status == HELD,
            Booking.status == ACTIVE,
            Booking.end_date <= cutoff,
            Inspection.verified_by_renter.is_(True),
            ~exists().where(DamageClaim.booking_id == Booking.id),
        )
        .order_by(Booking.end_date, Booking.id)
    )


async def run_release_sweep(
    db: AsyncSession,
    now: datetime,
    limit: int | None = None,
    dry_run: bool = False,
    lifecycle: BookingLifecycle | None = None,
) -> dict:
    """Release escrow for every active booking whose return has settled.

    A candidate is released when its release buffer has passed, no claim has
    been filed, and its return was confirmed by the owner or left unanswered
    past the claim window. Silence is recorded as ``auto_accepted_at`` on the
    return inspection. Each release runs in its own savepoint so one failure
    does not undo the others; failures are collected, not raised.

    ``limit`` caps the releases per run, not the rows read. Candidates whose
    claim window is still open are skipped and the scan pages on past them
    by ``(end_date, booking id)``.
    """
    lifecycle = lifecycle or default_lifecycle()
    limit = min(limit or settings.sweep_batch_limit, 250)
    cutoff = (now - timedelta(hours=lifecycle.policy.release_buffer_hours)).date()
    summary = {"dry_run": dry_run, "scanned": 0, "eligible": 0, "released": 0, "errors": []}

    after: tuple[date, uuid.UUID] | None = None
    while summary["eligible"] < limit:
        query = _sweep_candidates(cutoff)
        if after is not None:
            last_end, last_id = after
            query = query.where(
                or_(Booking.end_date > last_end, and_(Booking.end_date == last_end, Booking.id > last_id))
            )
        rows = list((await db.execute(query.limit(limit))).all())
        if not rows:
            break
        # A rolled-back savepoint expires what it touched; take the page key first.
        after = (rows[-1][1].end_date, rows[-1][1].id)

        for payment, booking, inspection, hours in rows:
            if summary["eligible"] >= limit:
                break
            summary["scanned"] += 1
            window = lifecycle.evaluate_claim_window(inspection, hours, now)
            if not window.accepted:
                continue
            summary["eligible"] += 1
            if dry_run:
                continue
            if await _sweep_release(db, payment, booking, inspection, window, now, lifecycle, summary):
                summary["released"] += 1

        if len(rows) < limit:
            break

    logger.info(
        "Release sweep finished: scanned=%d eligible=%d released=%d errors=%d dry_run=%s",
        summary["scanned"],
        summary["eligible"],
        summary["released"],
        len(summary["errors"]),
        dry_run,
    )
    return summary


async def _sweep_release(
    db: AsyncSession,
    payment: Payment,
    booking: Booking,
    inspection: Inspection,
    window: ClaimWindow,
    now: datetime,
    lifecycle: BookingLifecycle,
    summary: dict,
) -> bool:
    payment_id, booking_id = payment.id, booking.id
    try:
        async with db.begin_nested():
            locked = await lock_payment(db, payment_id)
            if locked is None or locked.escrow_status != HELD:
                return False
            # A claim may have been filed since the candidate query.
            if await get_claim(db, booking_id) is not None:
                return False
            if window.auto_accepted and inspection.auto_accepted_at is None:
                inspection.auto_accepted_at = now
            ledger = lifecycle.ledger(locked)
            instruction = ledger.release(booking.end_date, now, has_open_claim=False)
            deposit_refund = ledger.release_deposit() if locked.deposit_status == DEPOSIT_HELD else None
            record_payout(db, booking, instruction)
            lifecycle.complete(booking, locked, window, None, now)
            await db.flush()
            await refund_renter(locked, deposit_refund, f"deposit-{payment_id}")
    except (GearShareError, StaleDataError, stripe.StripeError) as exc:
        logger.warning("Sweep could not release payment %s: %s", payment_id, exc)
        summary["errors"].append({"payment_id": str(payment_id), "error": str(exc)})
        return False

    logger.info(
        "Sweep released payment %s for booking %s (%s)",
        payment_id,
        booking_id,
        "auto-accepted" if window.auto_accepted else "owner confirmed",
    )
    return True


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


async def process_pending_payouts(db: AsyncSession, now: datetime, limit: int | None = None) -> dict:
    """Transfer pending payouts to the owners' connected accounts."""
    limit = min(limit or settings.sweep_batch_limit, 250)
    result = await db.execute(
        select(Payout).where(Payout.status == "pending").order_by(Payout.created_at).limit(limit)
    )
    payouts = list(result.scalars().all())
    processed = failed = 0

    for payout in payouts:
        owner = await db.get(User, payout.owner_id)
        if owner is None or not owner.stripe_account_id:
            payout.status = "failed"
            payout.failure_reason = "Owner has no connected payout account"
            failed += 1
            logger.warning("Payout %s failed: owner %s has no payout account", payout.id, payout.owner_id)
            continue

        payout.status = "processing"
        await db.flush()
        try:
            transfer = await create_transfer(payout.amount, owner.stripe_account_id, str(payout.id))
        except stripe.StripeError as exc:
            payout.status = "failed"
            payout.failure_reason = str(exc)[:500]
            failed += 1
            logger.warning("Payout %s failed: %s", payout.id, exc)
            continue

        payout.status = "completed"
        payout.transfer_id = transfer.id
        payout.processed_at = now
        payment = await db.get(Payment, payout.payment_id)
        if payment is not None:
            payment.payout_processed_at = now
        processed += 1
        logger.info("Payout %s completed: %s to %s", payout.id, payout.amount, owner.stripe_account_id)

    await db.flush()
    return {"processed": processed, "failed": failed}
