"""Shared response schemas."""

from pydantic import BaseModel

from gearshare.schemas.equipment import ConflictResponse


class ErrorResponse(BaseModel):
    """Body returned for domain errors. ``conflicts`` is set for booking conflicts."""

    detail: str
    code: str
    conflicts: list[ConflictResponse] | None = None
