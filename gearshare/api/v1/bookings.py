"""Bookings API router.

Access rule: a booking is visible to its renter and to the equipment owner.
Owner-only and renter-only actions are checked per endpoint; anyone else gets
a 404 so booking ids do not leak.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.api.deps import (
    get_current_active_user,
    get_db,
    get_now,
    require_owner,
    require_renter,
)
from gearshare.models.booking import Booking
from gearshare.models.equipment import Equipment
from gearshare.models.user import User
from gearshare.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    ClaimWindowResponse,
    PaymentAuthorizationResponse,
)
from gearshare.schemas.claim import ClaimCreate, DamageClaimResponse
from gearshare.schemas.inspection import InspectionCreate, InspectionResponse
from gearshare.services import booking_service, claim_service, inspection_service

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_booking_for_party(
    booking_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
) -> Booking:
    """Fetch a booking the current user is the renter or owner of.

    Raises ``HTTPException 404`` otherwise.
    """
    result = await db.execute(
        select(Booking).where(
            Booking.id == booking_id,
            or_(Booking.renter_id == current_user.id, Booking.owner_id == current_user.id),
        )
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


# ---------------------------------------------------------------------------
# Booking requests
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a rental",
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    """Request equipment for ``[start_date, end_date)``.

    Returns 409 with the full conflict list when the range is not bookable.
    """
    equipment = await db.get(Equipment, body.equipment_id)
    if equipment is None or equipment.status != "active":
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Equipment not found",
        )
    if equipment.owner_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot rent your own equipment",
        )

    booking = await booking_service.request_booking(
        db,
        equipment,
        renter_id=current_user.id,
        start_date=body.start_date,
        end_date=body.end_date,
        insurance_tier=body.insurance_tier,
    )
    return BookingResponse.model_validate(booking)


@router.get(
    "",
    response_model=BookingListResponse,
    summary="List bookings as renter or owner",
)
async def list_bookings(
    role: str | None = Query(None, pattern="^(renter|owner)$"),
    status_filter: str | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingListResponse:
    """Return paginated bookings where the current user is a party."""
    if role == "renter":
        filters = [Booking.renter_id == current_user.id]
    elif role == "owner":
        filters = [Booking.owner_id == current_user.id]
    else:
        filters = [or_(Booking.renter_id == current_user.id, Booking.owner_id == current_user.id)]
    if status_filter is not None:
        filters.append(Booking.status == status_filter)

    total_result = await db.execute(select(func.count()).select_from(Booking).where(*filters))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Booking).where(*filters).order_by(Booking.start_date.desc()).offset(skip).limit(limit)
    )
    items = list(result.scalars().all())
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in items],
        total=total,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
)
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    return BookingResponse.model_validate(booking)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/approve",
    response_model=BookingResponse,
    summary="Approve a rental request",
)
async def approve_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    require_owner(booking, current_user)
    await booking_service.approve_booking(db, booking)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/decline",
    response_model=BookingResponse,
    summary="Decline a rental request",
)
async def decline_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    require_owner(booking, current_user)
    await booking_service.decline_booking(db, booking)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking before it starts",
)
async def cancel_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> BookingResponse:
    """Either party may cancel while the booking is pending or approved."""
    booking = await get_booking_for_party(booking_id, current_user, db)
    await booking_service.cancel_booking(db, booking, now)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/complete",
    response_model=BookingResponse,
    summary="Complete a settled rental",
)
async def complete_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> BookingResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    await booking_service.complete_booking(db, booking, now)
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/payment",
    response_model=PaymentAuthorizationResponse,
    summary="Authorize payment for an approved booking",
)
async def start_payment(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> PaymentAuthorizationResponse:
    """Create the manual-capture PaymentIntent; the webhook activates the booking."""
    booking = await get_booking_for_party(booking_id, current_user, db)
    require_renter(booking, current_user)
    authorization = await booking_service.start_payment(db, booking)
    return PaymentAuthorizationResponse(**authorization)


# ---------------------------------------------------------------------------
# Inspections and claims
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/inspections",
    response_model=InspectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit or confirm a pickup/return inspection",
)
async def record_inspection(
    booking_id: uuid.UUID,
    body: InspectionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> InspectionResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    inspection = await inspection_service.record_inspection(
        db,
        booking,
        actor_id=current_user.id,
        inspection_type=body.inspection_type,
        now=now,
        photos=body.photos,
        checklist_items=[item.model_dump() for item in body.checklist_items],
        notes=body.notes,
    )
    return InspectionResponse.model_validate(inspection)


@router.get(
    "/{booking_id}/claim-window",
    response_model=ClaimWindowResponse,
    summary="Whether the owner can still file a damage claim",
)
async def get_claim_window(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> ClaimWindowResponse:
    booking = await get_booking_for_party(booking_id, current_user, db)
    window = await claim_service.evaluate_claim_window(db, booking, now)
    return ClaimWindowResponse(
        booking_id=booking.id,
        can_file_claim=window.can_file_claim,
        auto_accepted=window.auto_accepted,
        deadline=window.deadline,
        reason=window.reason,
    )


@router.post(
    "/{booking_id}/claims",
    response_model=DamageClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a damage claim",
)
async def file_claim(
    booking_id: uuid.UUID,
    body: ClaimCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    now: datetime = Depends(get_now),
) -> DamageClaimResponse:
    """Owner files a claim inside the window; escrow moves to disputed."""
    booking = await get_booking_for_party(booking_id, current_user, db)
    require_owner(booking, current_user)
    claim = await claim_service.file_claim(
        db,
        booking,
        filed_by=current_user.id,
        description=body.description,
        estimated_cost=body.estimated_cost,
        evidence_photos=body.evidence_photos,
        now=now,
        repair_quotes=body.repair_quotes,
    )
    return DamageClaimResponse.model_validate(claim)
