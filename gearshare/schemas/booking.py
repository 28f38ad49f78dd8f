"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for requesting a rental.

    Same-day ranges pass validation here and are rejected by the
    minimum-duration rule, so they come back as a conflict list.
    """

    equipment_id: uuid.UUID
    start_date: date
    end_date: date
    insurance_tier: str = Field("none", pattern="^(none|basic|premium)$")

    @model_validator(mode="after")
    def check_dates(self) -> "BookingCreate":
        """Validate that end_date is not before start_date."""
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Standard booking response returned from lifecycle operations."""

    id: uuid.UUID
    equipment_id: uuid.UUID
    renter_id: uuid.UUID
    owner_id: uuid.UUID
    start_date: date
    end_date: date
    status: str
    insurance_tier: str
    subtotal: Decimal
    service_fee: Decimal
    insurance_cost: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    activated_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    """Paginated list of bookings."""

    items: list[BookingResponse]
    total: int


class PaymentAuthorizationResponse(BaseModel):
    """Client secret for confirming the manual-capture PaymentIntent."""

    booking_id: uuid.UUID
    payment_intent_id: str
    client_secret: str | None = None
    amount: Decimal


class ClaimWindowResponse(BaseModel):
    booking_id: uuid.UUID
    can_file_claim: bool
    auto_accepted: bool
    deadline: datetime | None = None
    reason: str | None = None
