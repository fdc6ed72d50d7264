"""Auth API — token issuance (development), logout and revocation stats.

Learn: Routes around the session lifecycle:
- POST /auth/token → development-only token for a given user/role
- POST /auth/logout → revoke the caller's own token
- GET /auth/revocations/stats → sizes of the revocation maps

Password login lives in the user service, which is not part of this API.
"""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException

from condor_mes.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    get_revocation_registry,
)
from condor_mes.auth.jwt import create_access_token
from condor_mes.auth.revocation import RevocationRegistry
from condor_mes.config import settings
from condor_mes.schemas.auth import (
    DevTokenRequest,
    MessageResponse,
    RevocationStats,
    TokenResponse,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/auth")


@router.post("/token", response_model=TokenResponse)
def issue_dev_token(body: DevTokenRequest):
    """Issue a token without credentials. Only available in development."""
    if settings.environment != "development":
        raise HTTPException(status_code=404, detail="Not Found")

    token = create_access_token(
        user_id=body.user_id,
        role=body.role,
        name=body.name,
        user_type=body.type,
        level=body.level,
    )
    logger.info("auth.dev_token_issued", user_id=body.user_id, role=body.role)
    return TokenResponse(
        access_token=token,
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    identity: CurrentIdentity = Depends(get_current_user),
    registry: RevocationRegistry = Depends(get_revocation_registry),
):
    """Revoke the presented token for the rest of its lifetime."""
    remaining = max(identity.expires_at - time.time(), 1)
    registry.revoke_token(identity.token_id, remaining)
    return MessageResponse(message="Session closed")


@router.get(
    "/revocations/stats",
    response_model=RevocationStats,
    dependencies=[Depends(get_current_user)],
)
def revocation_stats(
    registry: RevocationRegistry = Depends(get_revocation_registry),
):
    return registry.get_stats()
