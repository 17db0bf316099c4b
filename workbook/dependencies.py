# workbook/dependencies.py
# FastAPI dependencies shared by the routers. Service objects live on
# app.state and are built in the application lifespan.
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import Depends, HTTPException, Request, status

from services.step_engine.access import AccessGate
from services.step_engine.catalog import StepCatalog, get_catalog
from services.step_engine.models import ProgressRecord, Step
from workbook.auth.schemas import AuthenticatedUser, ErrorDetail
from workbook.constants import ErrorCodes
from workbook.middleware.auth import get_current_user
from workbook.services.identity import IdentityProvider, IdentityStoreError, UserProfile
from workbook.services.progress_store import ProgressRepository, ProgressStoreError
from workbook.services.unlock_attempts import UnlockAttemptCounter

logger = logging.getLogger(__name__)


def api_error(status_code: int, code: ErrorCodes, message: str, **extra: Any) -> HTTPException:
    """HTTPException whose body is the standard {"detail": {"code", "message"}} envelope."""
    detail: Dict[str, Any] = ErrorDetail(code=code.value, message=message).model_dump()
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


def get_progress_repository(request: Request) -> ProgressRepository:
    return request.app.state.progress_repository


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_access_gate(request: Request) -> AccessGate:
    return request.app.state.access_gate


def get_unlock_counter(request: Request) -> UnlockAttemptCounter:
    return request.app.state.unlock_counter


def get_step_catalog() -> StepCatalog:
    return get_catalog()


def get_clock() -> Callable[[], datetime]:
    return lambda: datetime.now(timezone.utc)


def save_failed() -> HTTPException:
    return api_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCodes.SAVE_FAILED,
        "Your changes could not be saved. Please try again.",
    )


async def get_current_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserProfile:
    """
    The caller's profile, created on first sight. While the identity store is
    down the caller is served as a sponsee so reads can degrade.
    """
    try:
        return await identity.ensure_profile(user.id, display_name=user.display_name)
    except IdentityStoreError as e:
        logger.warning(f"Profile unavailable for user {user.id}, continuing as sponsee: {e}")
        return UserProfile(id=user.id, display_name=user.display_name)


def resolve_step(step_number: int, catalog: StepCatalog = Depends(get_step_catalog)) -> Step:
    step = catalog.get_step(step_number)
    if step is None:
        raise api_error(status.HTTP_404_NOT_FOUND, ErrorCodes.STEP_NOT_FOUND, f"Step {step_number} not found.")
    return step


async def load_records(repo: ProgressRepository, user_id: str) -> List[ProgressRecord]:
    """Reads the user's records, degrading to an empty list if the store is down."""
    try:
        return await repo.list_all(user_id)
    except ProgressStoreError as e:
        logger.warning(f"Progress unavailable for user {user_id}, serving empty progress: {e}")
        return []


async def load_record(repo: ProgressRepository, user_id: str, step_number: int) -> Optional[ProgressRecord]:
    try:
        return await repo.get(user_id, step_number)
    except ProgressStoreError as e:
        logger.warning(f"Progress unavailable for user {user_id} step {step_number}: {e}")
        return None


async def shielded_write(write: Awaitable[ProgressRecord]) -> ProgressRecord:
    """
    Runs a store write so that a client disconnect cannot cancel it, and
    maps store failures to 503 SAVE_FAILED.
    """
    try:
        return await asyncio.shield(write)
    except ProgressStoreError as e:
        logger.error(f"Progress write failed: {e}")
        raise save_failed()
