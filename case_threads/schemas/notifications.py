"""Response schemas for in-app notifications."""

from datetime import datetime
from uuid import UUID

from ..models import CaseType, Notification
from .base import ThreadBaseModel


class NotificationResponse(ThreadBaseModel):
    """An in-app notification."""

    id: UUID
    recipient_user_id: UUID
    comment_id: UUID
    case_id: UUID
    case_type: CaseType
    case_title: str | None = None
    sender_id: UUID | None = None
    sender_name: str
    title: str
    preview: str
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


def notification_payload(notification: Notification) -> dict:
    """JSON-ready notification body for realtime events."""
    return NotificationResponse.model_validate(notification).model_dump(mode="json")


class NotificationListResponse(ThreadBaseModel):
    items: list[NotificationResponse]
    unread_count: int
    limit: int
    offset: int


class UnreadCountResponse(ThreadBaseModel):
    unread_count: int


class MarkAllReadResponse(ThreadBaseModel):
    updated: int
