"""
Mention Parser: extracts mention targets from raw comment text.

Three token families, applied in priority order:
1. Explicit user markup ``@[Display Name](user:<uuid>)`` written by the
   mention picker. This is the canonical format.
2. Role keywords ``@tekniker``, ``@koordinator``, ``@admin`` and the
   everyone keyword ``@alla``, case-insensitive, whole word.
3. Legacy capitalized-name heuristic (``@Anna Svensson``), best-effort
   only. Used only when the text has no explicit markup, and never
   claims a span an earlier rule already claimed.

Parsing is pure: no store access, no side effects.
"""

import re
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from ..models import UserRole


class MentionKind(str, Enum):
    USER = "user"
    ROLE = "role"
    ALL = "all"


# Keyword as typed -> role it targets (None means everyone)
ROLE_KEYWORDS: dict[str, UserRole | None] = {
    "tekniker": UserRole.TECHNICIAN,
    "koordinator": UserRole.KOORDINATOR,
    "admin": UserRole.ADMIN,
    "alla": None,
}

ROLE_LABELS: dict[UserRole, str] = {
    UserRole.ADMIN: "Admin",
    UserRole.KOORDINATOR: "Koordinator",
    UserRole.TECHNICIAN: "Tekniker",
}

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

EXPLICIT_MENTION_RE = re.compile(
    r"@\[(?P<name>[^\]\n]+)\]\(user:(?P<id>" + _UUID + r")\)"
)
ROLE_MENTION_RE = re.compile(
    r"@(?P<keyword>tekniker|koordinator|admin|alla)\b",
    re.IGNORECASE,
)
_NAME_WORD = r"[A-ZÅÄÖ][\w'-]*"
NAME_MENTION_RE = re.compile(
    r"@(?P<name>" + _NAME_WORD + r"(?:[ \t]+" + _NAME_WORD + r"){0,3})"
    r"(?=[\s.,!?;:)\]]|$)"
)


@dataclass(frozen=True)
class MentionToken:
    """A mention found in comment text."""
    kind: MentionKind
    raw_token: str
    start_offset: int
    user_id: UUID | None = None
    role: UserRole | None = None
    display_name: str | None = None
    heuristic: bool = False  # Legacy name match, needs directory lookup

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.raw_token)


def format_mention(display_name: str, user_id: UUID) -> str:
    """Render the explicit markup the mention picker inserts."""
    clean = display_name.replace("]", "").replace("\n", " ").strip()
    return f"@[{clean}](user:{user_id})"


def strip_mention_markup(text: str) -> str:
    """Replace explicit markup with ``@Display Name`` for plain-text previews."""
    return EXPLICIT_MENTION_RE.sub(lambda m: f"@{m.group('name')}", text)


class MentionParser:
    """Extracts ordered mention tokens from comment text."""

    def __init__(self, allow_name_fallback: bool = True):
        self._allow_name_fallback = allow_name_fallback

    def parse(self, text: str) -> list[MentionToken]:
        """Return mention tokens ordered by start offset."""
        if not text or "@" not in text:
            return []

        tokens: list[MentionToken] = []
        claimed: list[tuple[int, int]] = []

        for match in EXPLICIT_MENTION_RE.finditer(text):
            tokens.append(MentionToken(
                kind=MentionKind.USER,
                raw_token=match.group(0),
                start_offset=match.start(),
                user_id=UUID(match.group("id")),
                display_name=match.group("name").strip(),
            ))
            claimed.append(match.span())

        has_explicit = bool(tokens)

        for match in ROLE_MENTION_RE.finditer(text):
            if _overlaps(match.span(), claimed):
                continue
            role = ROLE_KEYWORDS[match.group("keyword").lower()]
            tokens.append(MentionToken(
                kind=MentionKind.ALL if role is None else MentionKind.ROLE,
                raw_token=match.group(0),
                start_offset=match.start(),
                role=role,
            ))
            claimed.append(match.span())

        if self._allow_name_fallback and not has_explicit:
            for match in NAME_MENTION_RE.finditer(text):
                name = match.group("name").strip()
                if len(name) < 2 or name.lower() in ROLE_KEYWORDS:
                    continue
                if _overlaps(match.span(), claimed):
                    continue
                tokens.append(MentionToken(
                    kind=MentionKind.USER,
                    raw_token=match.group(0),
                    start_offset=match.start(),
                    display_name=name,
                    heuristic=True,
                ))
                claimed.append(match.span())

        tokens.sort(key=lambda token: token.start_offset)
        return tokens


def parse_mentions(text: str, allow_name_fallback: bool = True) -> list[MentionToken]:
    """Parse ``text`` with a default parser."""
    return MentionParser(allow_name_fallback=allow_name_fallback).parse(text)


def _overlaps(span: tuple[int, int], claimed: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < c_end and c_start < end for c_start, c_end in claimed)
