import logging

from fastapi import APIRouter, Depends, status

from services.step_engine.access import AccessGate
from workbook.constants import ErrorCodes
from workbook.dependencies import (
    api_error,
    get_access_gate,
    get_current_profile,
    get_identity_provider,
    save_failed,
)
from workbook.schemas.account import RoleRequest, RoleResponse
from workbook.services.identity import IdentityProvider, IdentityStoreError, UserProfile

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/account/me", response_model=UserProfile)
async def get_me(profile: UserProfile = Depends(get_current_profile)):
    return profile


@router.post("/account/role", response_model=RoleResponse)
async def elevate_role(
    request: RoleRequest,
    profile: UserProfile = Depends(get_current_profile),
    identity: IdentityProvider = Depends(get_identity_provider),
    gate: AccessGate = Depends(get_access_gate),
):
    """
    Switches the caller to the sponsor role when the shared phrase matches.
    Sign-up, the dashboard switch and the password screen all call this.
    """
    try:
        elevated = await gate.elevate_role(identity, profile.id, request.phrase)
        updated = await identity.get_profile(profile.id) if elevated else None
    except IdentityStoreError as e:
        logger.error(f"Role change for user {profile.id} failed: {e}")
        raise save_failed()
    if not elevated:
        raise api_error(status.HTTP_403_FORBIDDEN, ErrorCodes.PHRASE_REJECTED, "That phrase is not correct.")
    return RoleResponse(elevated=True, profile=updated or profile)
