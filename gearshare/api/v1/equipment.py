"""Equipment API routes: listings, calendar overrides, availability and quotes."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.api.deps import get_current_active_user, get_db
from gearshare.core.errors import InvalidDateRange
from gearshare.models.equipment import Equipment, RateOverride
from gearshare.models.user import User
from gearshare.schemas.equipment import (
    AvailabilityResponse,
    ConflictResponse,
    EquipmentCreate,
    EquipmentResponse,
    PricingResponse,
    RateOverrideResponse,
    RateOverridesUpdate,
)
from gearshare.services.common import booking_snapshot, default_lifecycle

router = APIRouter(prefix="/api/v1/equipment", tags=["equipment"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_equipment(equipment_id: uuid.UUID, db: AsyncSession) -> Equipment:
    equipment = await db.get(Equipment, equipment_id)
    if equipment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Equipment not found",
        )
    return equipment


def _check_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise InvalidDateRange()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EquipmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="List a piece of equipment for rent",
)
async def create_equipment(
    body: EquipmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> EquipmentResponse:
    """Create an equipment listing owned by the authenticated user."""
    equipment = Equipment(owner_id=current_user.id, **body.model_dump())
    db.add(equipment)
    await db.flush()
    await db.refresh(equipment)
    return EquipmentResponse.model_validate(equipment)


@router.get(
    "/{equipment_id}",
    response_model=EquipmentResponse,
    summary="Get equipment details",
)
async def get_equipment(
    equipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> EquipmentResponse:
    equipment = await _get_equipment(equipment_id, db)
    return EquipmentResponse.model_validate(equipment)


@router.put(
    "/{equipment_id}/rate-overrides",
    response_model=list[RateOverrideResponse],
    summary="Set per-date prices and blocked dates",
)
async def update_rate_overrides(
    equipment_id: uuid.UUID,
    body: RateOverridesUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[RateOverrideResponse]:
    """Upsert calendar overrides. Only the equipment's owner may change them."""
    equipment = await _get_equipment(equipment_id, db)
    if equipment.owner_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the owner can change this calendar",
        )

    dates = [o.date for o in body.overrides]
    result = await db.execute(
        select(RateOverride).where(
            RateOverride.equipment_id == equipment_id,
            RateOverride.date.in_(dates),
        )
    )
    existing = {o.date: o for o in result.scalars().all()}

    saved: list[RateOverride] = []
    for item in body.overrides:
        override = existing.get(item.date)
        if override is None:
            override = RateOverride(equipment_id=equipment_id, date=item.date)
            db.add(override)
            existing[item.date] = override
        override.is_available = item.is_available
        override.custom_rate = item.custom_rate
        saved.append(override)
    await db.flush()
    return [RateOverrideResponse.model_validate(o) for o in saved]


@router.get(
    "/{equipment_id}/availability",
    response_model=AvailabilityResponse,
    summary="Check whether a date range can be booked",
)
async def check_availability(
    equipment_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
) -> AvailabilityResponse:
    """Return every conflict for ``[start_date, end_date)``; none means bookable."""
    _check_range(start_date, end_date)
    await _get_equipment(equipment_id, db)
    existing, overrides = await booking_snapshot(db, equipment_id, start_date, end_date)
    conflicts = default_lifecycle().conflicts_for(equipment_id, start_date, end_date, existing, overrides)
    return AvailabilityResponse(
        equipment_id=equipment_id,
        start_date=start_date,
        end_date=end_date,
        available=not conflicts,
        conflicts=[ConflictResponse.model_validate(c) for c in conflicts],
    )


@router.get(
    "/{equipment_id}/quote",
    response_model=PricingResponse,
    summary="Price a rental",
)
async def quote_rental(
    equipment_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    insurance_tier: str = Query("none"),
    db: AsyncSession = Depends(get_db),
) -> PricingResponse:
    """Itemized price for the range, using the equipment's rate, overrides and deposit."""
    _check_range(start_date, end_date)
    equipment = await _get_equipment(equipment_id, db)
    _, overrides = await booking_snapshot(db, equipment_id, start_date, end_date)
    breakdown = default_lifecycle().pricing.calculate(
        equipment.daily_rate,
        start_date,
        end_date,
        overrides,
        insurance_tier=insurance_tier,
        deposit=equipment.deposit_amount,
    )
    return PricingResponse.model_validate(breakdown)
