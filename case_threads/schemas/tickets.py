"""Response schemas for viewer-relative tickets."""

from datetime import datetime

from ..models import CommentStatus
from .base import ThreadBaseModel
from .comments import CommentResponse


class TicketResponse(ThreadBaseModel):
    """A root comment with its replies and the viewer's worklist stats."""

    root_comment: CommentResponse
    replies: list[CommentResponse]
    status: CommentStatus
    unanswered_mentions: int
    outgoing_questions_total: int
    outgoing_questions_answered: int
    outgoing_questions_pending_names: list[str]
    unread_count: int
    replies_to_my_comments: int
    new_comments: int
    latest_activity_at: datetime
    needs_action: bool
    waiting_on_others: bool
    priority: str


class TicketListResponse(ThreadBaseModel):
    items: list[TicketResponse]
    total: int
    limit: int
    offset: int


class TicketStatsResponse(ThreadBaseModel):
    active: int
    unanswered_mentions: int
    waiting_on_others: int
    unread_activity: int
    resolved_recently: int
