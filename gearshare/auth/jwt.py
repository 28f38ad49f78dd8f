"""Access tokens identifying the user behind a request.

Tokens are issued by the identity provider in production. ``create_access_token``
exists for service callers, the seed script and tests that act as a given user.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JWTClaimsError

from gearshare.config import settings

ACCESS_TOKEN = "access"


def create_access_token(user_id: uuid.UUID | str, expires_delta: timedelta | None = None) -> str:
    """Sign an access token whose subject is ``user_id``.

    Expiry defaults to ``settings.jwt_access_token_expire_minutes``.
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)),
        "type": ACCESS_TOKEN,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Raises ``jose.JWTError`` if the token is invalid, expired, or malformed."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def user_id_from_token(token: str) -> uuid.UUID:
    """Return the id of the user an access token was issued for.

    Raises:
        jose.JWTError: bad signature or expiry, a token of another type, or a
            subject that is not a user id.
    """
    payload = decode_token(token)
    if payload.get("type") != ACCESS_TOKEN:
        raise JWTClaimsError("Not an access token")
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise JWTClaimsError("Token subject is not a user id") from None
