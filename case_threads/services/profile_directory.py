"""
Profile Directory: read access to the Identity/Profile store.

Mention resolution and display-name lookups go through the
``UserDirectory`` protocol so they can be backed by any identity
source; ``ProfileDirectory`` is the SQL implementation over ``profiles``.
"""

from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.resilience import bounded
from ..models import INTERNAL_ROLES, Profile, UserRole
from .mention_parser import ROLE_LABELS

FALLBACK_USER_NAME = "Användare"


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass(frozen=True)
class UserInfo:
    """Resolved identity used by mentions and display."""
    id: UUID
    display_name: str
    role: UserRole
    is_active: bool

    @property
    def is_internal(self) -> bool:
        return self.role in INTERNAL_ROLES


@dataclass(frozen=True)
class UserRef:
    """Minimal user reference returned by directory listings."""
    id: UUID
    display_name: str


class UserDirectory(Protocol):
    """Identity/Profile store interface consumed by the comment engine."""

    async def resolve_user(self, user_id: UUID) -> UserInfo | None: ...

    async def resolve_users(self, user_ids: Iterable[UUID]) -> dict[UUID, UserInfo]: ...

    async def list_users_by_role(self, role: UserRole) -> list[UserRef]: ...

    async def list_active_internal_users(self) -> list[UserRef]: ...


def display_name_for(profile: Profile) -> str:
    """Profile display name with the technician-name and role-label fallbacks."""
    if profile.display_name and profile.display_name.strip():
        return profile.display_name.strip()
    if profile.technician_name and profile.technician_name.strip():
        return profile.technician_name.strip()
    return ROLE_LABELS.get(profile.role, FALLBACK_USER_NAME)


def _to_info(profile: Profile) -> UserInfo:
    return UserInfo(
        id=profile.id,
        display_name=display_name_for(profile),
        role=profile.role,
        is_active=profile.is_active,
    )


def _to_ref(profile: Profile) -> UserRef:
    return UserRef(id=profile.id, display_name=display_name_for(profile))


# =============================================================================
# SQL IMPLEMENTATION
# =============================================================================


class ProfileDirectory:
    """UserDirectory backed by the ``profiles`` table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def resolve_user(self, user_id: UUID) -> UserInfo | None:
        profile = await bounded(self._session.get(Profile, user_id))
        return _to_info(profile) if profile is not None else None

    async def resolve_users(self, user_ids: Iterable[UUID]) -> dict[UUID, UserInfo]:
        ids = set(user_ids)
        if not ids:
            return {}
        result = await bounded(
            self._session.execute(select(Profile).where(Profile.id.in_(ids)))
        )
        return {profile.id: _to_info(profile) for profile in result.scalars()}

    async def list_users_by_role(self, role: UserRole) -> list[UserRef]:
        """Active users holding ``role``."""
        result = await bounded(
            self._session.execute(
                select(Profile).where(
                    Profile.role == role,
                    Profile.is_active.is_(True),
                )
            )
        )
        return sorted(
            (_to_ref(profile) for profile in result.scalars()),
            key=lambda ref: ref.display_name.lower(),
        )

    async def list_active_internal_users(self) -> list[UserRef]:
        """Active admin, koordinator and technician users."""
        result = await bounded(
            self._session.execute(
                select(Profile).where(
                    Profile.role.in_(list(INTERNAL_ROLES)),
                    Profile.is_active.is_(True),
                )
            )
        )
        return sorted(
            (_to_ref(profile) for profile in result.scalars()),
            key=lambda ref: ref.display_name.lower(),
        )
