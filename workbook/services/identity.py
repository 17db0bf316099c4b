import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.step_engine.access import Role
from services.step_engine.models import WireModel
from workbook.db.models import User
from workbook.db.session import session_scope

logger = logging.getLogger(__name__)


class IdentityStoreError(Exception):
    """Raised when the profile store cannot complete a read or write."""
    pass


class UserProfile(WireModel):
    id: str
    role: Role = Role.SPONSEE
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IdentityProvider(ABC):
    """
    Profile and role lookup for users authenticated elsewhere.

    Only AccessGate.elevate_role should call set_role with Role.SPONSOR.
    """

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> UserProfile:
        """Returns the profile, creating a sponsee profile on first sight."""
        pass

    @abstractmethod
    async def set_role(self, user_id: str, role: Role) -> UserProfile:
        pass

    async def role(self, user_id: str) -> Role:
        profile = await self.get_profile(user_id)
        return profile.role if profile else Role.SPONSEE


class InMemoryIdentityProvider(IdentityProvider):
    def __init__(self, profiles: Optional[Dict[str, UserProfile]] = None):
        self._profiles: Dict[str, UserProfile] = dict(profiles or {})

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = UserProfile(id=user_id, display_name=display_name)
            self._profiles[user_id] = profile
            logger.info(f"Created sponsee profile for user {user_id}.")
        return profile

    async def set_role(self, user_id: str, role: Role) -> UserProfile:
        profile = await self.ensure_profile(user_id)
        updated = profile.model_copy(update={"role": Role(role)})
        self._profiles[user_id] = updated
        return updated


def _to_profile(row: User) -> UserProfile:
    return UserProfile(
        id=row.id,
        role=Role(row.role),
        display_name=row.display_name,
        created_at=row.created_at or datetime.now(timezone.utc),
    )


class SqlIdentityProvider(IdentityProvider):
    """Profiles in the users table. SQL failures are raised as IdentityStoreError."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(User, user_id)
                return _to_profile(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read profile for user {user_id}: {e}")
            raise IdentityStoreError(str(e)) from e

    async def ensure_profile(self, user_id: str, display_name: Optional[str] = None) -> UserProfile:
        existing = await self.get_profile(user_id)
        if existing is not None:
            return existing
        try:
            async with session_scope(self._session_factory) as session:
                row = User(id=user_id, role=Role.SPONSEE.value, display_name=display_name)
                session.add(row)
                await session.flush()
                await session.refresh(row)
                profile = _to_profile(row)
            logger.info(f"Created sponsee profile for user {user_id}.")
            return profile
        except IntegrityError as e:
            # a concurrent request created it first
            logger.debug(f"Profile for user {user_id} already created concurrently.")
            profile = await self.get_profile(user_id)
            if profile is None:
                raise IdentityStoreError(str(e)) from e
            return profile
        except SQLAlchemyError as e:
            logger.error(f"Failed to create profile for user {user_id}: {e}")
            raise IdentityStoreError(str(e)) from e

    async def set_role(self, user_id: str, role: Role) -> UserProfile:
        await self.ensure_profile(user_id)
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(select(User).where(User.id == user_id))
                row = result.scalar_one()
                row.role = Role(role).value
                row.updated_at = datetime.now(timezone.utc)
                await session.flush()
                return _to_profile(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to set role for user {user_id}: {e}")
            raise IdentityStoreError(str(e)) from e
