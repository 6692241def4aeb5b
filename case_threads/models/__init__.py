"""SQLAlchemy ORM Models for case comment threads."""

from .base import Base, TimestampMixin, UTCDateTime, UUIDMixin, utcnow
from .models import (
    # Enums
    CaseType,
    CommentStatus,
    INTERNAL_ROLES,
    UserRole,
    # Identity
    Profile,
    # Comments
    Comment,
    Reply,
    RootComment,
    # Notifications & receipts
    Notification,
    ReadReceipt,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    # Enums
    "CaseType",
    "CommentStatus",
    "UserRole",
    "INTERNAL_ROLES",
    # Identity
    "Profile",
    # Comments
    "Comment",
    "RootComment",
    "Reply",
    # Notifications & receipts
    "Notification",
    "ReadReceipt",
]
