"""FastAPI auth dependencies.

Learn: Route handlers depend on get_current_user to get the verified
caller. Verification has two stages:
1. Signature + expiry (PyJWT)
2. Revocation (the app's RevocationRegistry — logout / force-logout)

Role claims are passed through on the identity; no policy is applied here.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from condor_mes.auth.jwt import TokenError, TokenExpiredError, verify_token
from condor_mes.auth.revocation import RevocationRegistry

# Non-standard status the MES clients treat as "session expired, log in again".
SESSION_EXPIRED_STATUS = 440


class CurrentIdentity:
    """The authenticated user behind a request, built from token claims."""

    def __init__(
        self,
        user_id: str,
        token_id: str,
        issued_at: int,
        expires_at: int,
        role: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.user_id = user_id
        self.token_id = token_id
        self.issued_at = issued_at
        self.expires_at = expires_at
        self.role = role
        self.name = name


def get_revocation_registry(request: Request) -> RevocationRegistry:
    """The process-wide registry created by the app factory."""
    return request.app.state.revocations


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    registry: RevocationRegistry = Depends(get_revocation_registry),
) -> CurrentIdentity:
    """Authenticate the bearer token (required — 401 if missing)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise _unauthorized("Authentication required")

    token = authorization[7:]
    try:
        payload = verify_token(token)
    except TokenExpiredError as e:
        raise HTTPException(status_code=SESSION_EXPIRED_STATUS, detail=str(e))
    except TokenError as e:
        raise _unauthorized(str(e))

    if registry.is_token_revoked(payload["jti"], payload["sub"], payload["iat"]):
        raise _unauthorized("Token has been revoked")

    return CurrentIdentity(
        user_id=payload["sub"],
        token_id=payload["jti"],
        issued_at=payload["iat"],
        expires_at=payload["exp"],
        role=payload.get("role"),
        name=payload.get("name"),
    )
