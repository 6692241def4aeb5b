"""
Comment Store: the single write path for case comments.

This module enforces the thread invariants:
- A comment needs text or at least one attachment
- Attachments are validated before any write
- A reply's parent belongs to the same case
- Only the author edits (never system comments); author or admin deletes
- Deleting a comment removes its whole subtree with its notifications
  and read receipts
- Status transitions apply to root comments only

Mentions are resolved once at create time and stored on the row. Edits
never recompute them.

After a create commits, notification fan-out is handed to the
DispatchScheduler so the caller never waits on delivery.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..core.errors import (
    CommentNotFoundError,
    EmptyContentError,
    ForbiddenError,
    UnsupportedAttachmentError,
)
from ..core.resilience import bounded, retry_store_call
from ..models import (
    CaseType,
    Comment,
    CommentStatus,
    INTERNAL_ROLES,
    Notification,
    ReadReceipt,
    Reply,
    RootComment,
    UserRole,
    utcnow,
)
from ..schemas import comment_payload
from .attachments import AttachmentInput, AttachmentStore, StoredAttachment, validate_attachments
from .mention_parser import MentionParser
from .mention_resolver import MentionResolution, MentionResolver
from .notification_dispatcher import DispatchScheduler
from .profile_directory import ProfileDirectory, UserDirectory, UserInfo
from .realtime import EventType, RealtimeHub, case_channel, publish_safely
from .status_lifecycle import StatusLifecycle

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR_NAME = "System"


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class CreateCommentInput:
    """Input for creating a comment or reply."""
    case_id: UUID
    case_type: CaseType
    content: str = ""
    parent_comment_id: UUID | None = None
    attachments: list[AttachmentInput] = field(default_factory=list)
    # Users picked in the mention picker, in addition to markup in content
    mentioned_user_ids: list[UUID] = field(default_factory=list)
    case_title: str | None = None


# =============================================================================
# STORE
# =============================================================================


class CommentStore:
    """Creates, edits, deletes and lists comments for cases."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        directory: UserDirectory | None = None,
        hub: RealtimeHub | None = None,
        scheduler: DispatchScheduler | None = None,
        attachment_store: AttachmentStore | None = None,
        lifecycle: StatusLifecycle | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._directory = directory or ProfileDirectory(session)
        self._hub = hub
        self._scheduler = scheduler
        self._attachment_store = attachment_store
        self._lifecycle = lifecycle or StatusLifecycle(clock=clock)
        self._settings = settings or get_settings()
        self._clock = clock
        self._parser = MentionParser(allow_name_fallback=self._settings.legacy_name_mentions_enabled)
        self._resolver = MentionResolver(self._directory)

    # -------------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------------

    async def create(self, input: CreateCommentInput, author: UserInfo) -> Comment:
        """
        Create a root comment or a reply.

        Flow:
        1. Validate content and attachments (nothing written yet)
        2. Check the parent belongs to the same case
        3. Upload attachment bytes
        4. Resolve mentions (explicit markup, picker ids, roles, everyone)
        5. Insert the row; reopen a resolved thread on a new reply
        6. Commit, then schedule notification fan-out

        Raises:
            EmptyContentError: no text and no attachments
            AttachmentTooLargeError / UnsupportedAttachmentError
            ForbiddenError: author is not internal staff
            CommentNotFoundError: parent missing or in another case
        """
        if not input.content.strip() and not input.attachments:
            raise EmptyContentError("Comment needs text or at least one attachment")
        validate_attachments(input.attachments, self._settings)

        if author.role not in INTERNAL_ROLES:
            raise ForbiddenError(f"Role {author.role.value} may not post case comments")

        parent_id: UUID | None = None
        root_id: UUID | None = None
        if input.parent_comment_id is not None:
            parent = await self._get_in_case_or_raise(
                input.parent_comment_id, input.case_id, input.case_type
            )
            parent_id, root_id = parent.id, parent.root_comment_id

        stored = await self._store_attachments(input.attachments, author.id)

        tokens = self._parser.parse(input.content)
        resolution = await retry_store_call(
            lambda: self._resolver.resolve(
                tokens,
                input.case_id,
                author.id,
                tracked_user_ids=input.mentioned_user_ids,
            ),
            description=f"Mention resolution in case {input.case_id}",
            on_retry=self._session.rollback,
        )

        comment_id = uuid4()
        reopened: list[RootComment] = []

        async def persist() -> Comment:
            reopened.clear()
            comment = self._build_comment(comment_id, input, author, parent_id, root_id, stored, resolution)
            self._session.add(comment)
            if root_id is not None:
                root = await self._get_or_raise(root_id)
                if isinstance(root, RootComment) and self._lifecycle.reopen_for_activity(root):
                    reopened.append(root)
            await bounded(self._session.commit())
            return comment

        comment = await retry_store_call(
            persist,
            description=f"Create comment in case {input.case_id}",
            on_retry=self._session.rollback,
        )

        logger.info(
            f"Comment {comment.id} created in {input.case_type.value} case {input.case_id} "
            f"by {author.id} ({len(resolution.user_ids)} users, {len(resolution.roles)} roles mentioned)"
        )

        for root in reopened:
            await self._publish(root, EventType.COMMENT_STATUS_CHANGED, comment_payload(root))

        if self._scheduler is not None:
            self._scheduler.schedule(comment.id, case_title=input.case_title)
        else:
            logger.warning(f"No dispatch scheduler; comment {comment.id} left for the re-dispatch job")

        return comment

    async def create_system_comment(
        self,
        case_id: UUID,
        case_type: CaseType,
        content: str,
        event_type: str,
    ) -> RootComment:
        """Record a system event in a case thread. Never notifies anyone."""
        if not content.strip():
            raise EmptyContentError("System comment needs text")

        now = self._clock()
        comment_id = uuid4()

        async def persist() -> RootComment:
            comment = RootComment(
                id=comment_id,
                case_id=case_id,
                case_type=case_type,
                parent_comment_id=None,
                root_comment_id=comment_id,
                author_id=None,
                author_name=SYSTEM_AUTHOR_NAME,
                author_role=UserRole.ADMIN,
                content=content,
                attachments=[],
                is_system_comment=True,
                system_event_type=event_type,
                status=CommentStatus.OPEN,
                created_at=now,
            )
            self._session.add(comment)
            await bounded(self._session.commit())
            return comment

        comment = await retry_store_call(
            persist,
            description=f"Create system comment in case {case_id}",
            on_retry=self._session.rollback,
        )
        logger.info(f"System comment {comment.id} ({event_type}) added to case {case_id}")
        await self._publish(comment, EventType.COMMENT_CREATED, comment_payload(comment))
        return comment

    # -------------------------------------------------------------------------
    # EDIT / ATTACH
    # -------------------------------------------------------------------------

    async def edit(self, comment_id: UUID, new_content: str, actor: UserInfo) -> Comment:
        """Replace the text of a comment. Mentions stay as they were at create time."""

        async def apply() -> Comment:
            comment = await self._get_or_raise(comment_id)
            if comment.is_system_comment:
                raise ForbiddenError("System comments cannot be edited")
            if comment.author_id != actor.id:
                raise ForbiddenError("Only the author can edit a comment")
            if not new_content.strip() and not comment.attachments:
                raise EmptyContentError("Comment needs text or at least one attachment")

            comment.content = new_content
            comment.is_edited = True
            comment.updated_at = self._clock()
            await bounded(self._session.commit())
            return comment

        comment = await retry_store_call(
            apply,
            description=f"Edit comment {comment_id}",
            on_retry=self._session.rollback,
        )
        await self._publish(comment, EventType.COMMENT_UPDATED, comment_payload(comment))
        return comment

    async def append_attachments(
        self,
        comment_id: UUID,
        attachments: list[AttachmentInput],
        actor: UserInfo,
    ) -> Comment:
        """Add attachments to an existing comment. Existing ones are never removed."""
        validate_attachments(attachments, self._settings)
        comment = await self._get_or_raise(comment_id)
        if comment.is_system_comment or comment.author_id != actor.id:
            raise ForbiddenError("Only the author can add attachments")

        stored = await self._store_attachments(attachments, actor.id)

        async def apply() -> Comment:
            target = await self._get_or_raise(comment_id)
            target.attachments = [*target.attachments, *(s.to_dict() for s in stored)]
            target.updated_at = self._clock()
            await bounded(self._session.commit())
            return target

        comment = await retry_store_call(
            apply,
            description=f"Attach to comment {comment_id}",
            on_retry=self._session.rollback,
        )
        await self._publish(comment, EventType.COMMENT_UPDATED, comment_payload(comment))
        return comment

    # -------------------------------------------------------------------------
    # DELETE
    # -------------------------------------------------------------------------

    async def delete(self, comment_id: UUID, actor: UserInfo) -> list[UUID]:
        """
        Hard-delete a comment and every reply beneath it.

        Notifications and read receipts for each removed comment go too.
        Returns the deleted ids.
        """
        comment = await self._get_or_raise(comment_id)
        if comment.author_id != actor.id and actor.role != UserRole.ADMIN:
            raise ForbiddenError("Only the author or an admin can delete a comment")

        case_id, case_type = comment.case_id, comment.case_type
        thread = await self._load_thread(comment.root_comment_id)
        doomed = collect_subtree(comment.id, thread)

        await retry_store_call(
            lambda: self._delete_ids(doomed),
            description=f"Delete comment {comment_id}",
            on_retry=self._session.rollback,
        )

        logger.info(f"Deleted comment {comment_id} with {len(doomed) - 1} replies by {actor.id}")
        if self._hub is not None:
            await publish_safely(
                self._hub,
                case_channel(case_type, case_id),
                EventType.COMMENT_DELETED,
                {
                    "id": str(comment_id),
                    "case_id": str(case_id),
                    "case_type": case_type.value,
                    "deleted_ids": [str(i) for i in doomed],
                },
            )
        return doomed

    async def delete_case_threads(self, case_id: UUID, case_type: CaseType) -> int:
        """Remove every comment of a case with its notifications and receipts."""
        result = await bounded(
            self._session.execute(
                select(Comment.id).where(
                    Comment.case_id == case_id,
                    Comment.case_type == case_type,
                )
            )
        )
        ids = list(result.scalars())
        if ids:
            await retry_store_call(
                lambda: self._delete_ids(ids),
                description=f"Delete threads of case {case_id}",
                on_retry=self._session.rollback,
            )
        logger.info(f"Deleted {len(ids)} comments for {case_type.value} case {case_id}")
        return len(ids)

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    async def set_status(self, comment_id: UUID, status: CommentStatus, actor: UserInfo) -> Comment:
        """Resolve or reopen a ticket through its root comment."""

        async def apply() -> tuple[Comment, bool]:
            comment = await self._get_or_raise(comment_id)
            changed = self._lifecycle.transition(comment, status, actor.id, actor.role)
            if changed:
                await bounded(self._session.commit())
            return comment, changed

        comment, changed = await retry_store_call(
            apply,
            description=f"Set status on comment {comment_id}",
            on_retry=self._session.rollback,
        )
        if changed:
            await self._publish(comment, EventType.COMMENT_STATUS_CHANGED, comment_payload(comment))
        return comment

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------

    async def get(self, comment_id: UUID) -> Comment:
        return await self._get_or_raise(comment_id)

    async def list_comments(self, case_id: UUID, case_type: CaseType) -> Sequence[Comment]:
        """All comments of a case, oldest first."""
        return await retry_store_call(
            lambda: self._select(
                Comment.case_id == case_id,
                Comment.case_type == case_type,
            ),
            description=f"List comments of case {case_id}",
        )

    async def search(self, case_id: UUID, case_type: CaseType, query: str) -> Sequence[Comment]:
        """Non-system comments of a case whose text contains ``query``."""
        needle = query.strip()
        if not needle:
            return await self.list_comments(case_id, case_type)
        return await retry_store_call(
            lambda: self._select(
                Comment.case_id == case_id,
                Comment.case_type == case_type,
                Comment.is_system_comment.is_(False),
                Comment.content.ilike(f"%{needle}%"),
            ),
            description=f"Search comments of case {case_id}",
        )

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _build_comment(
        self,
        comment_id: UUID,
        input: CreateCommentInput,
        author: UserInfo,
        parent_id: UUID | None,
        root_id: UUID | None,
        stored: list[StoredAttachment],
        resolution: MentionResolution,
    ) -> Comment:
        fields = dict(
            id=comment_id,
            case_id=input.case_id,
            case_type=input.case_type,
            author_id=author.id,
            author_name=author.display_name,
            author_role=author.role,
            content=input.content,
            attachments=[s.to_dict() for s in stored],
            mentioned_user_ids=[str(u) for u in resolution.user_ids],
            mentioned_user_names=list(resolution.user_names),
            mentioned_roles=sorted(r.value for r in resolution.roles),
            mentions_all=resolution.mentions_all,
            is_system_comment=False,
            is_edited=False,
            created_at=self._clock(),
        )
        if parent_id is None or root_id is None:
            return RootComment(
                parent_comment_id=None,
                root_comment_id=comment_id,
                status=CommentStatus.OPEN,
                **fields,
            )
        return Reply(
            parent_comment_id=parent_id,
            root_comment_id=root_id,
            **fields,
        )

    async def _store_attachments(
        self,
        attachments: list[AttachmentInput],
        owner_id: UUID,
    ) -> list[StoredAttachment]:
        stored: list[StoredAttachment] = []
        for attachment in attachments:
            if attachment.content is None:
                stored.append(StoredAttachment(
                    url=attachment.url or "",
                    filename=attachment.filename,
                    mimetype=attachment.mimetype,
                    size=attachment.size,
                    uploaded_at=self._clock(),
                ))
                continue
            if self._attachment_store is None:
                raise UnsupportedAttachmentError("Attachment uploads are not configured")
            stored.append(await self._attachment_store.upload(
                attachment.content,
                attachment.filename,
                attachment.mimetype,
                owner_id,
            ))
        return stored

    async def _get_or_raise(self, comment_id: UUID) -> Comment:
        comment = await bounded(self._session.get(Comment, comment_id))
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} not found")
        return comment

    async def _get_in_case_or_raise(
        self,
        comment_id: UUID,
        case_id: UUID,
        case_type: CaseType,
    ) -> Comment:
        comment = await bounded(self._session.get(Comment, comment_id))
        if comment is None or comment.case_id != case_id or comment.case_type != case_type:
            raise CommentNotFoundError(f"Parent comment {comment_id} not found in case {case_id}")
        return comment

    async def _load_thread(self, root_comment_id: UUID) -> Sequence[Comment]:
        return await self._select(Comment.root_comment_id == root_comment_id)

    async def _select(self, *criteria) -> Sequence[Comment]:
        result = await bounded(
            self._session.execute(
                select(Comment).where(*criteria).order_by(Comment.created_at, Comment.id)
            )
        )
        return result.scalars().all()

    async def _delete_ids(self, ids: list[UUID]) -> None:
        await bounded(self._session.execute(delete(ReadReceipt).where(ReadReceipt.comment_id.in_(ids))))
        await bounded(self._session.execute(delete(Notification).where(Notification.comment_id.in_(ids))))
        await bounded(self._session.execute(delete(Comment).where(Comment.id.in_(ids))))
        await bounded(self._session.commit())

    async def _publish(self, comment: Comment, event_type: str, payload: dict) -> None:
        if self._hub is None:
            return
        await publish_safely(
            self._hub,
            case_channel(comment.case_type, comment.case_id),
            event_type,
            payload,
        )


def collect_subtree(comment_id: UUID, thread: Sequence[Comment]) -> list[UUID]:
    """``comment_id`` plus every transitive reply found in ``thread``."""
    children: dict[UUID, list[UUID]] = {}
    for item in thread:
        if item.parent_comment_id is not None:
            children.setdefault(item.parent_comment_id, []).append(item.id)

    collected: list[UUID] = []
    seen: set[UUID] = set()
    frontier = [comment_id]
    while frontier:
        current = frontier.pop()
        if current in seen:
            continue
        seen.add(current)
        collected.append(current)
        frontier.extend(children.get(current, ()))
    return collected
