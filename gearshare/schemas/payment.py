"""Pydantic v2 request/response schemas for payment and escrow endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class EscrowTransitionRequest(BaseModel):
    """Drive an escrow event directly. Resolution goes through the claim endpoints."""

    event: str = Field(..., pattern="^(release|refund)$")


class PaymentResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    payment_intent_id: str | None = None
    total_amount: Decimal
    escrow_amount: Decimal
    escrow_status: str
    owner_payout_amount: Decimal
    refunded_amount: Decimal
    deposit_amount: Decimal
    deposit_status: str | None = None
    deposit_refund_amount: Decimal | None = None
    captured_at: datetime | None = None
    payout_processed_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayoutResponse(BaseModel):
    id: uuid.UUID
    payment_id: uuid.UUID
    owner_id: uuid.UUID
    amount: Decimal
    status: str
    transfer_id: str | None = None
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SweepResponse(BaseModel):
    """Result of one release sweep run."""

    dry_run: bool
    scanned: int
    eligible: int
    released: int
    errors: list[dict] = []


class PayoutRunResponse(BaseModel):
    processed: int
    failed: int
