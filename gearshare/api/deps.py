"""Shared API dependencies: single import point for all routers.

Re-exports the database session, authentication and clock dependencies so
that router modules can import everything they need from one place::

    from gearshare.api.deps import get_db, get_current_active_user, get_now
"""

import secrets
from datetime import datetime

from fastapi import Header, HTTPException, status

from gearshare.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    require_owner,
    require_renter,
)
from gearshare.config import settings
from gearshare.core.clock import utcnow
from gearshare.database import get_db


async def get_now() -> datetime:
    """Current naive-UTC time. Overridden in tests to pin the clock."""
    return utcnow()


async def require_service_caller(x_service_key: str | None = Header(None)) -> None:
    """Allow only internal schedulers holding ``SERVICE_API_KEY``.

    Raises:
        HTTPException 403: If no key is configured or the header does not match.
    """
    if not settings.service_api_key or not x_service_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service credentials required",
        )
    if not secrets.compare_digest(x_service_key, settings.service_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service credentials required",
        )


__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_now",
    "require_owner",
    "require_renter",
    "require_service_caller",
]
