"""Response schemas for comments, receipts and mention suggestions."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ..models import CaseType, Comment, CommentStatus, RootComment, UserRole
from .base import ThreadBaseModel


class AttachmentSchema(ThreadBaseModel):
    """Stored attachment reference."""

    url: str
    filename: str
    mimetype: str
    size: int | None = None
    uploaded_at: datetime | None = None


class CommentResponse(ThreadBaseModel):
    """A comment as returned to clients and pushed over realtime channels."""

    id: UUID
    case_id: UUID
    case_type: CaseType
    parent_comment_id: UUID | None
    root_comment_id: UUID
    author_id: UUID | None
    author_name: str
    author_role: UserRole
    content: str
    attachments: list[AttachmentSchema] = Field(default_factory=list)
    mentioned_user_ids: list[UUID] = Field(default_factory=list)
    mentioned_user_names: list[str] = Field(default_factory=list)
    mentioned_roles: list[str] = Field(default_factory=list)
    mentions_all: bool = False
    status: CommentStatus | None = None
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None
    is_system_comment: bool = False
    system_event_type: str | None = None
    is_edited: bool = False
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        response = cls.model_validate(comment)
        if not isinstance(comment, RootComment):
            # Replies never carry status of their own
            response.status = None
            response.resolved_at = None
            response.resolved_by = None
        return response


def comment_payload(comment: Comment) -> dict:
    """JSON-ready comment body for realtime events."""
    return CommentResponse.from_comment(comment).model_dump(mode="json")


class ReadReceiptResponse(ThreadBaseModel):
    """One "seen by" entry."""

    user_id: UUID
    user_name: str
    read_at: datetime


class ReadReceiptsResponse(ThreadBaseModel):
    comment_id: UUID
    read_count: int
    receipts: list[ReadReceiptResponse]


class RoleSuggestionResponse(ThreadBaseModel):
    keyword: str
    label: str
    role: UserRole | None
    member_count: int


class UserSuggestionResponse(ThreadBaseModel):
    id: UUID
    display_name: str


class MentionSuggestionsResponse(ThreadBaseModel):
    roles: list[RoleSuggestionResponse]
    users: list[UserSuggestionResponse]
