"""Pydantic v2 request/response schemas for equipment, calendar and quote endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class EquipmentCreate(BaseModel):
    """Schema for listing a new piece of equipment."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    daily_rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    deposit_amount: Decimal = Field(Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    claim_window_hours: int | None = Field(None, ge=1, le=24 * 14)


class RateOverrideIn(BaseModel):
    """A single calendar exception."""

    date: date
    is_available: bool = True
    custom_rate: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)


class RateOverridesUpdate(BaseModel):
    """Upsert a batch of calendar exceptions. Existing overrides for the same dates are replaced."""

    overrides: list[RateOverrideIn] = Field(..., min_length=1, max_length=366)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class EquipmentResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str | None = None
    daily_rate: Decimal
    deposit_amount: Decimal
    claim_window_hours: int | None = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RateOverrideResponse(BaseModel):
    date: date
    is_available: bool
    custom_rate: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)


class ConflictResponse(BaseModel):
    """One reason a date range cannot be booked."""

    type: str
    message: str
    conflicting_dates: list[date] = []

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    equipment_id: uuid.UUID
    start_date: date
    end_date: date
    available: bool
    conflicts: list[ConflictResponse]


class PricingResponse(BaseModel):
    """Itemized rental cost. ``amount_due`` adds the refundable deposit to ``total``."""

    days: int
    daily_rate: Decimal
    subtotal: Decimal
    service_fee_rate: Decimal
    service_fee: Decimal
    insurance_tier: str
    insurance_cost: Decimal
    deposit: Decimal
    total: Decimal
    amount_due: Decimal

    model_config = ConfigDict(from_attributes=True)

