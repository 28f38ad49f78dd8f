"""Pydantic v2 request/response schemas for inspection endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ChecklistItem(BaseModel):
    item: str = Field(..., min_length=1, max_length=255)
    status: str = Field(..., pattern="^(good|fair|damaged)$")
    notes: str | None = Field(None, max_length=1000)


class InspectionCreate(BaseModel):
    """Submit or confirm a pickup/return inspection.

    The first submission creates the report; later submissions by the other
    party only add their verification. Who verifies is taken from the caller.
    """

    inspection_type: str = Field(..., pattern="^(pickup|return)$")
    photos: list[str] = Field(default_factory=list, max_length=30)
    checklist_items: list[ChecklistItem] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)


class InspectionResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    inspection_type: str
    timestamp: datetime
    verified_by_owner: bool
    verified_by_renter: bool
    photos: list[str]
    checklist_items: list[ChecklistItem]
    notes: str | None = None
    auto_accepted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
