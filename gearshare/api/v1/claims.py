"""Damage claim API routes: renter responses, escalation and settlement.

A claim settles when the renter accepts it, when the owner accepts the
renter's counter offer, or when the platform arbitrates an escalated claim.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.api.deps import (
    get_current_active_user,
    get_db,
    get_now,
    require_owner,
    require_renter,
    require_service_caller,
)
from gearshare.api.v1.bookings import get_booking_for_party
from gearshare.models.booking import Booking
from gearshare.models.damage_claim import DamageClaim
from gearshare.models.user import User
from gearshare.schemas.claim import ClaimResolve, ClaimResponseCreate, DamageClaimResponse
from gearshare.services import claim_service

router = APIRouter(prefix="/api/v1/claims", tags=["claims"])


async def _get_claim_for_party(
    claim_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
) -> tuple[DamageClaim, Booking]:
    claim = await db.get(DamageClaim, claim_id)
    if claim is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Claim not found",
        )
    booking = await get_booking_for_party(claim.booking_id, current_user, db)
    return claim, booking


@router.get(
    "/{claim_id}",
    response_model=DamageClaimResponse,
    summary="Get a damage claim",
)
async def get_claim(
    claim_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> DamageClaimResponse:
    claim, _ = await _get_claim_for_party(claim_id, current_user, db)
    return DamageClaimResponse.model_validate(claim)


@router.post(
    "/{claim_id}/response",
    response_model=DamageClaimResponse,
    summary="Renter accepts, disputes or counters a claim",
)
async def respond_to_claim(
    claim_id: uuid.UUID,
    body: ClaimResponseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> DamageClaimResponse:
    """Accepting settles the claim at its estimated cost from the deposit."""
    claim, booking = await _get_claim_for_party(claim_id, current_user, db)
    require_renter(booking, current_user)
    await claim_service.respond_to_claim(
        db,
        claim,
        body.action,
        now,
        counter_offer=body.counter_offer,
        notes=body.notes,
    )
    return DamageClaimResponse.model_validate(claim)


@router.post(
    "/{claim_id}/escalate",
    response_model=DamageClaimResponse,
    summary="Escalate a claim to arbitration",
)
async def escalate_claim(
    claim_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> DamageClaimResponse:
    claim, _ = await _get_claim_for_party(claim_id, current_user, db)
    await claim_service.escalate_claim(db, claim)
    return DamageClaimResponse.model_validate(claim)


@router.post(
    "/{claim_id}/accept-counter-offer",
    response_model=DamageClaimResponse,
    summary="Owner accepts the renter's counter offer",
)
async def accept_counter_offer(
    claim_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> DamageClaimResponse:
    """Settles the claim at the counter offer and splits the escrow."""
    claim, booking = await _get_claim_for_party(claim_id, current_user, db)
    require_owner(booking, current_user)
    await claim_service.accept_counter_offer(db, claim, now)
    return DamageClaimResponse.model_validate(claim)


@router.post(
    "/{claim_id}/resolve",
    response_model=DamageClaimResponse,
    summary="Record an arbitration decision",
    dependencies=[Depends(require_service_caller)],
)
async def resolve_claim(
    claim_id: uuid.UUID,
    body: ClaimResolve,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> DamageClaimResponse:
    """Internal arbitration only; neither party can settle a claim here."""
    claim = await db.get(DamageClaim, claim_id)
    if claim is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Claim not found",
        )
    await claim_service.resolve_claim(
        db,
        claim,
        body.final_amount,
        now,
        escrow_to_owner=body.escrow_to_owner,
    )
    return DamageClaimResponse.model_validate(claim)
