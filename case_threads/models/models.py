"""
SQLAlchemy ORM Models for case comment threads.

Comments form threads per case: a root comment plus its transitive
replies. Status lives only on root comments, which is expressed with
single-table inheritance (RootComment vs Reply) rather than a nullable
status convention.

Author name and role on a comment are a snapshot at write time; later
profile edits never rewrite history.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


class CaseType(str, PyEnum):
    """Kind of service case a thread is attached to."""

    PRIVATE = "private"
    BUSINESS = "business"
    CONTRACT = "contract"


class UserRole(str, PyEnum):
    """Profile roles. Only internal roles may author comments."""

    ADMIN = "admin"
    KOORDINATOR = "koordinator"
    TECHNICIAN = "technician"
    CUSTOMER = "customer"

    @property
    def is_internal(self) -> bool:
        return self in INTERNAL_ROLES


INTERNAL_ROLES = frozenset({UserRole.ADMIN, UserRole.KOORDINATOR, UserRole.TECHNICIAN})


class CommentStatus(str, PyEnum):
    """Ticket status, carried by root comments only."""

    OPEN = "open"
    RESOLVED = "resolved"


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# IDENTITY
# =============================================================================


class Profile(Base, UUIDMixin, TimestampMixin):
    """Identity/profile record used for mention resolution and display names."""

    __tablename__ = "profiles"

    display_name: Mapped[str | None] = mapped_column(String(200))
    technician_name: Mapped[str | None] = mapped_column(
        String(200),
        comment="Name from the linked technician record, used when display_name is empty",
    )
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_profiles_role_active", "role", "is_active"),
    )


# =============================================================================
# COMMENTS
# =============================================================================


class Comment(Base, UUIDMixin, TimestampMixin):
    """A comment on a service case.

    Never instantiated directly: rows load as RootComment or Reply.
    ``root_comment_id`` is denormalized at create time (a root points at
    itself) so a whole thread can be fetched or deleted by one key.
    """

    __tablename__ = "comments"

    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    case_id: Mapped[UUID] = mapped_column(nullable=False)
    case_type: Mapped[CaseType] = mapped_column(_enum(CaseType, "case_type"), nullable=False)
    parent_comment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    root_comment_id: Mapped[UUID] = mapped_column(nullable=False)

    # Author snapshot at write time; null author_id marks a system author
    author_id: Mapped[UUID | None] = mapped_column(nullable=True)
    author_name: Mapped[str] = mapped_column(String(200), nullable=False)
    author_role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), nullable=False)

    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # Derived once at create time, never recomputed
    mentioned_user_ids: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    mentioned_user_names: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    mentioned_roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    mentions_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_system_comment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    system_event_type: Mapped[str | None] = mapped_column(String(50))
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __mapper_args__ = {"polymorphic_on": "kind"}

    __table_args__ = (
        Index("idx_comments_case", "case_type", "case_id", "created_at"),
        Index("idx_comments_root", "root_comment_id", "created_at"),
        Index("idx_comments_parent", "parent_comment_id"),
        Index("idx_comments_author", "author_id"),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_comment_id is None

    @property
    def mentioned_user_uuids(self) -> list[UUID]:
        return [UUID(value) for value in self.mentioned_user_ids]

    def mentioned_name_for(self, user_id: UUID) -> str | None:
        """Display name recorded for a mentioned user at write time."""
        key = str(user_id)
        for index, value in enumerate(self.mentioned_user_ids):
            if value == key and index < len(self.mentioned_user_names):
                return self.mentioned_user_names[index]
        return None


class RootComment(Comment):
    """Comment with no parent; owns the ticket status for its thread."""

    status: Mapped[CommentStatus | None] = mapped_column(
        _enum(CommentStatus, "comment_status"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __mapper_args__ = {
        "polymorphic_identity": "root",
        "polymorphic_load": "inline",
    }


class Reply(Comment):
    """Comment inside a thread; displays its root's status."""

    __mapper_args__ = {
        "polymorphic_identity": "reply",
        "polymorphic_load": "inline",
    }


# =============================================================================
# NOTIFICATIONS & READ RECEIPTS
# =============================================================================


class Notification(Base, UUIDMixin):
    """In-app notification produced by mention fan-out."""

    __tablename__ = "notifications"

    recipient_user_id: Mapped[UUID] = mapped_column(nullable=False)
    comment_id: Mapped[UUID] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    case_id: Mapped[UUID] = mapped_column(nullable=False)
    case_type: Mapped[CaseType] = mapped_column(_enum(CaseType, "case_type"), nullable=False)
    case_title: Mapped[str | None] = mapped_column(String(300))
    sender_id: Mapped[UUID | None] = mapped_column(nullable=True)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    preview: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("recipient_user_id", "comment_id"),
        Index("idx_notifications_recipient", "recipient_user_id", "created_at"),
        Index("idx_notifications_unread", "recipient_user_id", "is_read"),
        Index("idx_notifications_comment", "comment_id"),
    )


class ReadReceipt(Base):
    """Marks that a user has viewed a comment. One row per (comment, user)."""

    __tablename__ = "comment_read_receipts"

    comment_id: Mapped[UUID] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[UUID] = mapped_column(primary_key=True)
    read_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_read_receipts_user", "user_id"),
    )
