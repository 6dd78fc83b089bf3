"""
Bearer-token identity.

Users sign in with the identity service, which issues HS256 JWTs signed
with the SECRET_KEY it shares with this API. This module only verifies
them; the one claim the API relies on is "sub", the user's UUID.

create_access_token() mints a token the same way, for operators and for
the test-suite.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from billpay.config import settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Sign a token carrying `data` plus an "exp" claim.

    The lifetime defaults to ACCESS_TOKEN_EXPIRE_MINUTES. A negative
    expires_delta produces an already-expired token.
    """
    lifetime = (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify signature and expiry and return the claims.

    Raises:
        JWTError: If the token is expired, tampered with, or malformed.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def get_token_subject(token: str) -> uuid.UUID:
    """
    Return the user id a token was issued for.

    Raises:
        JWTError: Invalid token, or no "sub" claim.
        ValueError: "sub" is not a UUID.
    """
    subject = decode_access_token(token).get("sub")
    if subject is None:
        raise JWTError("Token has no subject")
    return uuid.UUID(subject)
