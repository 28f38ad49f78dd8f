"""Pydantic v2 request/response schemas for damage claim endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ClaimCreate(BaseModel):
    """Owner files a damage claim inside the claim window."""

    description: str = Field(..., min_length=1, max_length=5000)
    estimated_cost: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    evidence_photos: list[str] = Field(..., min_length=1, max_length=30)
    repair_quotes: list[str] = Field(default_factory=list, max_length=10)


class ClaimResponseCreate(BaseModel):
    """Renter's answer to a claim."""

    action: str = Field(..., pattern="^(accept|dispute|negotiate)$")
    counter_offer: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_counter_offer(self) -> "ClaimResponseCreate":
        """A negotiation needs a counter offer; other actions must not carry one."""
        if self.action == "negotiate" and self.counter_offer is None:
            raise ValueError("counter_offer is required when negotiating")
        if self.action != "negotiate" and self.counter_offer is not None:
            raise ValueError("counter_offer is only allowed when negotiating")
        return self


class ClaimResolve(BaseModel):
    """Arbitration decision on an escalated claim.

    ``escrow_to_owner`` defaults to the whole escrowed amount; whatever is not
    paid to the owner is refunded to the renter.
    """

    final_amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    escrow_to_owner: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RenterResponse(BaseModel):
    action: str
    counter_offer: Decimal | None = None
    notes: str | None = None
    responded_at: datetime


class DamageClaimResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    filed_by: uuid.UUID
    description: str
    estimated_cost: Decimal
    evidence_photos: list[str]
    repair_quotes: list[str]
    status: str
    filed_at: datetime
    renter_response: RenterResponse | None = None
    final_amount: Decimal | None = None
    paid_from_deposit: Decimal | None = None
    additional_charge: Decimal | None = None
    escrow_to_owner: Decimal | None = None
    escrow_to_renter: Decimal | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    model_config = ConfigDict(from_attributes=True)
