"""Pydantic schemas for API request/response validation."""

from .base import (
    ErrorDetail,
    ErrorResponse,
    ThreadBaseModel,
)
from .comments import (
    AttachmentSchema,
    CommentResponse,
    MentionSuggestionsResponse,
    ReadReceiptResponse,
    ReadReceiptsResponse,
    RoleSuggestionResponse,
    UserSuggestionResponse,
    comment_payload,
)
from .notifications import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
    notification_payload,
)
from .tickets import TicketListResponse, TicketResponse, TicketStatsResponse

__all__ = [
    # Base
    "ThreadBaseModel",
    "ErrorDetail",
    "ErrorResponse",
    # Comments
    "AttachmentSchema",
    "CommentResponse",
    "ReadReceiptResponse",
    "ReadReceiptsResponse",
    "RoleSuggestionResponse",
    "UserSuggestionResponse",
    "MentionSuggestionsResponse",
    "comment_payload",
    # Notifications
    "NotificationResponse",
    "NotificationListResponse",
    "UnreadCountResponse",
    "MarkAllReadResponse",
    "notification_payload",
    # Tickets
    "TicketResponse",
    "TicketListResponse",
    "TicketStatsResponse",
]
