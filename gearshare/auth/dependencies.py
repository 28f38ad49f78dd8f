"""Request authentication and booking party checks.

Every booking has two parties: the equipment owner and the renter. Routes
first resolve the caller from the bearer token, then check which side of the
booking the caller is on before acting for that side.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.auth.jwt import user_id_from_token
from gearshare.database import get_db
from gearshare.models.booking import Booking
from gearshare.models.user import User

OWNER = "owner"
RENTER = "renter"

# Missing credentials are answered with 401 below, not FastAPI's default 403
_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user.

    Raises:
        HTTPException 401: no token, an invalid or expired one, or an unknown user.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        user_id = user_id_from_token(credentials.credentials)
    except JWTError:
        raise _unauthorized("Could not validate credentials") from None

    user = await db.get(User, user_id)
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user


async def get_current_active_user(user: User = Depends(get_current_user)) -> User:
    """Suspended accounts can neither list, book nor settle rentals."""
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


def booking_party(booking: Booking, user: User) -> str | None:
    """Which side of ``booking`` the user is on, or None for outsiders."""
    if booking.owner_id == user.id:
        return OWNER
    if booking.renter_id == user.id:
        return RENTER
    return None


def require_owner(booking: Booking, user: User) -> None:
    if booking_party(booking, user) != OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the equipment owner can do this",
        )


def require_renter(booking: Booking, user: User) -> None:
    if booking_party(booking, user) != RENTER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the renter can do this",
        )
