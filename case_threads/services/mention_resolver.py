"""
Mention Resolver: turns parsed mention tokens into recipients.

Resolution happens in two stages:
- ``resolve`` runs at create time and produces what is stored on the
  comment: explicit user ids (with their names), role tags and the
  everyone flag. Roles are NOT expanded here.
- ``recipients_for`` runs at dispatch time and expands role/everyone
  tags against the directory, deduplicates, and drops the author and
  inactive profiles.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from ..core.config import get_settings
from ..models import Comment, UserRole
from .mention_parser import MentionKind, MentionToken, ROLE_LABELS
from .profile_directory import UserDirectory, UserRef

logger = logging.getLogger(__name__)

# Keyword shown in the picker for each role suggestion
SUGGESTION_KEYWORDS: list[tuple[str, UserRole | None]] = [
    ("tekniker", UserRole.TECHNICIAN),
    ("koordinator", UserRole.KOORDINATOR),
    ("admin", UserRole.ADMIN),
    ("alla", None),
]


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class MentionResolution:
    """Mention targets as stored on a comment."""
    user_ids: list[UUID] = field(default_factory=list)
    user_names: list[str] = field(default_factory=list)
    roles: set[UserRole] = field(default_factory=set)
    mentions_all: bool = False

    def add_user(self, user_id: UUID, name: str) -> None:
        if user_id in self.user_ids:
            return
        self.user_ids.append(user_id)
        self.user_names.append(name)

    @property
    def is_empty(self) -> bool:
        return not self.user_ids and not self.roles and not self.mentions_all


@dataclass(frozen=True)
class RoleSuggestion:
    keyword: str
    label: str
    role: UserRole | None
    member_count: int


@dataclass
class MentionSuggestions:
    roles: list[RoleSuggestion]
    users: list[UserRef]


# =============================================================================
# RESOLVER
# =============================================================================


class MentionResolver:
    """Resolves mention tokens against a user directory."""

    def __init__(self, directory: UserDirectory):
        self._directory = directory

    async def resolve(
        self,
        tokens: list[MentionToken],
        case_id: UUID,
        author_id: UUID | None = None,
        tracked_user_ids: Iterable[UUID] = (),
    ) -> MentionResolution:
        """
        Resolve tokens into stored mention targets.

        Self-mentions are dropped silently. Unknown and customer ids are
        dropped with a warning. Legacy name tokens match active internal
        users by exact, case-insensitive display name. ``tracked_user_ids``
        are users picked in the mention picker without markup in the text.
        """
        resolution = MentionResolution()
        explicit = [t for t in tokens if t.kind == MentionKind.USER and t.user_id is not None]
        heuristic = [t for t in tokens if t.kind == MentionKind.USER and t.heuristic]

        explicit_ids = [t.user_id for t in explicit]
        explicit_ids.extend(u for u in tracked_user_ids if u not in explicit_ids)

        known = await self._directory.resolve_users(explicit_ids)
        for user_id in explicit_ids:
            if user_id == author_id:
                continue
            info = known.get(user_id)
            if info is None:
                logger.warning(f"Dropping mention of unknown user {user_id} in case {case_id}")
                continue
            if not info.is_internal:
                logger.warning(f"Dropping mention of non-staff user {user_id} in case {case_id}")
                continue
            resolution.add_user(info.id, info.display_name)

        if heuristic:
            by_name = {
                ref.display_name.lower(): ref
                for ref in await self._directory.list_active_internal_users()
            }
            for token in heuristic:
                ref = by_name.get((token.display_name or "").lower())
                if ref is None or ref.id == author_id:
                    continue
                resolution.add_user(ref.id, ref.display_name)

        for token in tokens:
            if token.kind == MentionKind.ROLE and token.role is not None:
                resolution.roles.add(token.role)
            elif token.kind == MentionKind.ALL:
                resolution.mentions_all = True

        return resolution

    async def recipients_for(self, comment: Comment) -> list[UserRef]:
        """
        Expand a stored comment's mention targets into notification recipients.

        Flow:
        1. Explicit user ids (active internal profiles only)
        2. Every active user per mentioned role
        3. Every active internal user for an everyone mention
        4. Deduplicate, drop the author
        """
        recipients: dict[UUID, UserRef] = {}

        explicit_ids = comment.mentioned_user_uuids
        if explicit_ids:
            infos = await self._directory.resolve_users(explicit_ids)
            for user_id in explicit_ids:
                info = infos.get(user_id)
                if info is None or not info.is_active or not info.is_internal:
                    continue
                recipients.setdefault(user_id, UserRef(id=info.id, display_name=info.display_name))

        if comment.mentions_all:
            for ref in await self._directory.list_active_internal_users():
                recipients.setdefault(ref.id, ref)
        else:
            for role_value in sorted(comment.mentioned_roles):
                for ref in await self._directory.list_users_by_role(UserRole(role_value)):
                    recipients.setdefault(ref.id, ref)

        if comment.author_id is not None:
            recipients.pop(comment.author_id, None)

        return list(recipients.values())

    async def suggest(self, query: str, current_user_id: UUID) -> MentionSuggestions:
        """
        Suggestions for the mention picker.

        Role keywords match by prefix and carry member counts. Users are
        active internal profiles other than the current user, filtered by
        name substring and sorted by name.
        """
        settings = get_settings()
        needle = query.strip().lstrip("@").lower()

        internal = await self._directory.list_active_internal_users()

        roles: list[RoleSuggestion] = []
        for keyword, role in SUGGESTION_KEYWORDS:
            if needle and not keyword.startswith(needle):
                continue
            if role is None:
                count = len(internal)
                label = "Alla"
            else:
                count = len(await self._directory.list_users_by_role(role))
                label = ROLE_LABELS[role]
            roles.append(RoleSuggestion(keyword=keyword, label=label, role=role, member_count=count))

        limit = settings.mention_suggestion_limit if needle else settings.mention_suggestion_limit_unfiltered
        users = [
            ref for ref in internal
            if ref.id != current_user_id and needle in ref.display_name.lower()
        ]
        users.sort(key=lambda ref: ref.display_name.lower())

        return MentionSuggestions(roles=roles, users=users[:limit])
