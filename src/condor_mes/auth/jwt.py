"""JWT access token creation and verification.

Every token carries a unique ``jti`` so it can be revoked on its own,
a ``sub`` with the user id (as a string), and ``iat`` in seconds since
the epoch. Role/profile claims are passed through untouched.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from condor_mes.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenExpiredError(TokenError):
    """Raised when the token signature is valid but ``exp`` has passed."""


def create_access_token(
    user_id: int | str,
    role: Optional[str] = None,
    name: Optional[str] = None,
    user_type: Optional[str] = None,
    level: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed access token for a user."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": expires,
        "role": role,
        "name": name,
        "type": user_type,
        "level": level,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode an access token.

    Returns the payload dict on success. Raises TokenExpiredError for
    expired tokens and TokenError for anything else.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "jti", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
