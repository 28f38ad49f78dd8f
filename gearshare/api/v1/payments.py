"""Payment and escrow API routes.

Parties to a booking can read its payment and drive the escrow events they
are entitled to. The release sweep and payout run are for internal
schedulers only.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.api.deps import (
    get_current_active_user,
    get_db,
    get_now,
    require_owner,
    require_service_caller,
)
from gearshare.api.v1.bookings import get_booking_for_party
from gearshare.models.booking import Booking
from gearshare.models.payment import Payment, Payout
from gearshare.models.user import User
from gearshare.schemas.payment import (
    EscrowTransitionRequest,
    PaymentResponse,
    PayoutResponse,
    PayoutRunResponse,
    SweepResponse,
)
from gearshare.services import escrow_service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


async def _get_payment_for_party(
    payment_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
) -> tuple[Payment, Booking]:
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        )
    booking = await get_booking_for_party(payment.booking_id, current_user, db)
    return payment, booking


# ---------------------------------------------------------------------------
# Scheduler endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Release escrow for settled returns",
    dependencies=[Depends(require_service_caller)],
)
async def run_release_sweep(
    dry_run: bool = Query(False),
    limit: int | None = Query(None, ge=1, le=250),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> SweepResponse:
    """Release every held escrow whose return was confirmed or auto-accepted."""
    summary = await escrow_service.run_release_sweep(db, now, limit=limit, dry_run=dry_run)
    return SweepResponse(**summary)


@router.post(
    "/payouts/process",
    response_model=PayoutRunResponse,
    summary="Transfer pending owner payouts",
    dependencies=[Depends(require_service_caller)],
)
async def process_payouts(
    limit: int | None = Query(None, ge=1, le=250),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> PayoutRunResponse:
    result = await escrow_service.process_pending_payouts(db, now, limit=limit)
    return PayoutRunResponse(**result)


# ---------------------------------------------------------------------------
# Payment endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get a payment and its escrow state",
)
async def get_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> PaymentResponse:
    payment, _ = await _get_payment_for_party(payment_id, current_user, db)
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{payment_id}/escrow",
    response_model=PaymentResponse,
    summary="Apply an escrow event",
)
async def transition_escrow(
    payment_id: uuid.UUID,
    body: EscrowTransitionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> PaymentResponse:
    """``release`` is owner-only; ``refund`` is allowed to either party while eligible.

    Returns 409 when the transition is not allowed from the current state.
    """
    payment, booking = await _get_payment_for_party(payment_id, current_user, db)
    if body.event == "release":
        require_owner(booking, current_user)
    payment = await escrow_service.transition_escrow(db, payment, body.event, now)
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{payment_id}/release",
    response_model=PaymentResponse,
    summary="Owner requests escrow release",
)
async def request_release(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> PaymentResponse:
    """Confirms the return and releases escrow once the release buffer has passed."""
    _, booking = await _get_payment_for_party(payment_id, current_user, db)
    require_owner(booking, current_user)
    payment = await escrow_service.release_escrow(db, booking, now)
    return PaymentResponse.model_validate(payment)


@router.get(
    "/{payment_id}/payouts",
    response_model=list[PayoutResponse],
    summary="List owner payouts for a payment",
)
async def list_payouts(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[PayoutResponse]:
    await _get_payment_for_party(payment_id, current_user, db)
    result = await db.execute(select(Payout).where(Payout.payment_id == payment_id).order_by(Payout.created_at))
    return [PayoutResponse.model_validate(p) for p in result.scalars().all()]
