"""User session administration — force logout and its reversal.

Learn: Force logout doesn't touch the tokens themselves; it records a
cutoff for the user and every token issued before it is rejected by
get_current_user. The cutoff stays until explicitly cleared.
"""

import structlog
from fastapi import APIRouter, Depends

from condor_mes.auth.dependencies import CurrentIdentity, get_current_user, get_revocation_registry
from condor_mes.auth.revocation import RevocationRegistry
from condor_mes.schemas.auth import MessageResponse

logger = structlog.get_logger()
router = APIRouter(prefix="/users")


@router.post("/{user_id}/force-logout", response_model=MessageResponse)
def force_logout(
    user_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    registry: RevocationRegistry = Depends(get_revocation_registry),
):
    """Close every open session of a user."""
    registry.revoke_all_user_tokens(user_id)
    logger.info("users.force_logout", user_id=user_id, by=identity.user_id, role=identity.role)
    return MessageResponse(message=f"All sessions of user {user_id} have been closed")


@router.delete("/{user_id}/revocation", response_model=MessageResponse)
def clear_revocation(
    user_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    registry: RevocationRegistry = Depends(get_revocation_registry),
):
    registry.clear_user_revocation(user_id)
    logger.info("users.revocation_cleared", user_id=user_id, by=identity.user_id)
    return MessageResponse(message=f"Session revocation of user {user_id} cleared")
