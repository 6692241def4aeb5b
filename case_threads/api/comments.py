"""
Comment API Routes: case threads, edits, status and read receipts.

Domain errors raised by the services are mapped to HTTP responses by
the application-wide handler in ``main.py``.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, File, Query, UploadFile, status
from pydantic import BaseModel, Field

from ..models import CaseType, CommentStatus
from ..schemas import (
    CommentResponse,
    MentionSuggestionsResponse,
    ReadReceiptResponse,
    ReadReceiptsResponse,
    RoleSuggestionResponse,
    UserSuggestionResponse,
)
from ..services import AttachmentInput, CreateCommentInput, validate_attachment
from .dependencies import (
    AdminDep,
    AttachmentStoreDep,
    CommentStoreDep,
    CurrentActorDep,
    MentionResolverDep,
    ReceiptTrackerDep,
)

router = APIRouter(tags=["comments"])


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================


class AttachmentRefSchema(BaseModel):
    """An attachment already uploaded through ``POST /attachments``."""
    url: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1, max_length=255)
    mimetype: str = Field(..., min_length=1, max_length=100)
    size: int = Field(..., ge=0)


class CreateCommentRequest(BaseModel):
    content: str = Field(default="", max_length=20000)
    parent_comment_id: UUID | None = None
    attachments: list[AttachmentRefSchema] = Field(default_factory=list, max_length=10)
    mentioned_user_ids: list[UUID] = Field(
        default_factory=list,
        description="Users picked in the mention picker",
    )
    case_title: str | None = Field(default=None, max_length=300)


class CreateSystemCommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    event_type: str = Field(..., min_length=1, max_length=50)


class EditCommentRequest(BaseModel):
    content: str = Field(..., max_length=20000)


class SetStatusRequest(BaseModel):
    status: CommentStatus


class AppendAttachmentsRequest(BaseModel):
    attachments: list[AttachmentRefSchema] = Field(..., min_length=1, max_length=10)


class MarkManyReadRequest(BaseModel):
    comment_ids: list[UUID] = Field(..., min_length=1, max_length=500)


class ReadCountResponse(BaseModel):
    comment_id: UUID
    read_count: int


class DeleteResponse(BaseModel):
    deleted_ids: list[UUID]


class CaseCleanupResponse(BaseModel):
    deleted: int


class UploadedAttachmentResponse(BaseModel):
    url: str
    filename: str
    mimetype: str
    size: int
    uploaded_at: datetime


def to_attachment_inputs(refs: list[AttachmentRefSchema]) -> list[AttachmentInput]:
    return [
        AttachmentInput(filename=a.filename, mimetype=a.mimetype, size=a.size, url=a.url)
        for a in refs
    ]


# =============================================================================
# CASE THREADS
# =============================================================================


@router.get(
    "/cases/{case_type}/{case_id}/comments",
    response_model=list[CommentResponse],
)
async def list_comments(
    case_type: CaseType,
    case_id: UUID,
    actor: CurrentActorDep,
    store: CommentStoreDep,
    q: Annotated[str | None, Query(max_length=200)] = None,
):
    """All comments of a case, oldest first. ``q`` filters non-system comments by text."""
    if q:
        comments = await store.search(case_id, case_type, q)
    else:
        comments = await store.list_comments(case_id, case_type)
    return [CommentResponse.from_comment(c) for c in comments]


@router.post(
    "/cases/{case_type}/{case_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    case_type: CaseType,
    case_id: UUID,
    request: CreateCommentRequest,
    actor: CurrentActorDep,
    store: CommentStoreDep,
):
    """Post a root comment or a reply. Notifications go out in the background."""
    comment = await store.create(
        CreateCommentInput(
            case_id=case_id,
            case_type=case_type,
            content=request.content,
            parent_comment_id=request.parent_comment_id,
            attachments=to_attachment_inputs(request.attachments),
            mentioned_user_ids=request.mentioned_user_ids,
            case_title=request.case_title,
        ),
        author=actor,
    )
    return CommentResponse.from_comment(comment)


@router.post(
    "/cases/{case_type}/{case_id}/system-comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_system_comment(
    case_type: CaseType,
    case_id: UUID,
    request: CreateSystemCommentRequest,
    admin: AdminDep,
    store: CommentStoreDep,
):
    comment = await store.create_system_comment(
        case_id, case_type, request.content, request.event_type
    )
    return CommentResponse.from_comment(comment)


@router.delete(
    "/cases/{case_type}/{case_id}/comments",
    response_model=CaseCleanupResponse,
)
async def delete_case_threads(
    case_type: CaseType,
    case_id: UUID,
    admin: AdminDep,
    store: CommentStoreDep,
):
    """Remove all threads of a case (called when the case itself is deleted)."""
    deleted = await store.delete_case_threads(case_id, case_type)
    return CaseCleanupResponse(deleted=deleted)


# =============================================================================
# ATTACHMENTS
# =============================================================================


@router.post(
    "/attachments",
    response_model=UploadedAttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachment(
    actor: CurrentActorDep,
    attachment_store: AttachmentStoreDep,
    file: UploadFile = File(...),
):
    """Validate and upload a file; the returned reference goes into a new comment."""
    data = await file.read()
    filename = file.filename or "attachment"
    mimetype = file.content_type or "application/octet-stream"
    validate_attachment(filename, mimetype, len(data))
    stored = await attachment_store.upload(data, filename, mimetype, actor.id)
    return UploadedAttachmentResponse(
        url=stored.url,
        filename=stored.filename,
        mimetype=stored.mimetype,
        size=stored.size,
        uploaded_at=stored.uploaded_at,
    )


# =============================================================================
# SINGLE COMMENT
# =============================================================================


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
async def edit_comment(
    comment_id: UUID,
    request: EditCommentRequest,
    actor: CurrentActorDep,
    store: CommentStoreDep,
):
    """Edit text. Mentions recorded at creation are kept as they were."""
    comment = await store.edit(comment_id, request.content, actor)
    return CommentResponse.from_comment(comment)


@router.delete("/comments/{comment_id}", response_model=DeleteResponse)
async def delete_comment(
    comment_id: UUID,
    actor: CurrentActorDep,
    store: CommentStoreDep,
):
    """Delete a comment and all replies beneath it."""
    deleted = await store.delete(comment_id, actor)
    return DeleteResponse(deleted_ids=deleted)


@router.post("/comments/{comment_id}/attachments", response_model=CommentResponse)
async def append_comment_attachments(
    comment_id: UUID,
    request: AppendAttachmentsRequest,
    actor: CurrentActorDep,
    store: CommentStoreDep,
):
    """Add uploaded files to a comment the actor wrote."""
    comment = await store.append_attachments(comment_id, to_attachment_inputs(request.attachments), actor)
    return CommentResponse.from_comment(comment)


@router.put("/comments/{comment_id}/status", response_model=CommentResponse)
async def set_comment_status(
    comment_id: UUID,
    request: SetStatusRequest,
    actor: CurrentActorDep,
    store: CommentStoreDep,
):
    """Resolve or reopen a ticket via its root comment."""
    comment = await store.set_status(comment_id, CommentStatus(request.status), actor)
    return CommentResponse.from_comment(comment)


# =============================================================================
# READ RECEIPTS
# =============================================================================


@router.post("/comments/read", status_code=status.HTTP_202_ACCEPTED)
async def mark_comments_read(
    request: MarkManyReadRequest,
    actor: CurrentActorDep,
    tracker: ReceiptTrackerDep,
    background_tasks: BackgroundTasks,
):
    """Record views for a whole thread at once."""
    background_tasks.add_task(tracker.mark_many_read, request.comment_ids, actor.id)
    return {"accepted": True, "count": len(request.comment_ids)}


@router.post("/comments/{comment_id}/read", status_code=status.HTTP_202_ACCEPTED)
async def mark_comment_read(
    comment_id: UUID,
    actor: CurrentActorDep,
    tracker: ReceiptTrackerDep,
    background_tasks: BackgroundTasks,
):
    """Record a view. Runs after the response; failures are dropped."""
    background_tasks.add_task(tracker.mark_read, comment_id, actor.id)
    return {"accepted": True}


@router.get("/comments/{comment_id}/read-count", response_model=ReadCountResponse)
async def get_comment_read_count(
    comment_id: UUID,
    actor: CurrentActorDep,
    store: CommentStoreDep,
    tracker: ReceiptTrackerDep,
):
    await store.get(comment_id)
    return ReadCountResponse(comment_id=comment_id, read_count=await tracker.get_read_count(comment_id))


@router.get("/comments/{comment_id}/receipts", response_model=ReadReceiptsResponse)
async def get_comment_receipts(
    comment_id: UUID,
    actor: CurrentActorDep,
    store: CommentStoreDep,
    tracker: ReceiptTrackerDep,
):
    """Who has seen a comment."""
    await store.get(comment_id)
    receipts = await tracker.get_receipts(comment_id)
    return ReadReceiptsResponse(
        comment_id=comment_id,
        read_count=len(receipts),
        receipts=[
            ReadReceiptResponse(user_id=r.user_id, user_name=r.user_name, read_at=r.read_at)
            for r in receipts
        ],
    )


# =============================================================================
# MENTION PICKER
# =============================================================================


@router.get("/mentions/suggestions", response_model=MentionSuggestionsResponse)
async def mention_suggestions(
    actor: CurrentActorDep,
    resolver: MentionResolverDep,
    q: Annotated[str, Query(max_length=100)] = "",
):
    suggestions = await resolver.suggest(q, actor.id)
    return MentionSuggestionsResponse(
        roles=[
            RoleSuggestionResponse(
                keyword=r.keyword,
                label=r.label,
                role=r.role,
                member_count=r.member_count,
            )
            for r in suggestions.roles
        ],
        users=[
            UserSuggestionResponse(id=u.id, display_name=u.display_name)
            for u in suggestions.users
        ],
    )
