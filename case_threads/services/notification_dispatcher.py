"""
Notification Dispatcher: fans a new comment out to its mention recipients.

Flow for one comment:
1. Skip system comments entirely
2. Publish comment.created on the case channel
3. Expand recipients (explicit users, roles, everyone; minus author and
   inactive profiles)
4. Per recipient: insert-if-absent a Notification row, commit, then
   publish notification.created on the recipient's channel

A failed row write for one recipient is logged and the rest continue.
Realtime failures are logged and never undo a committed row.
Re-dispatching the same comment never duplicates rows: the
(recipient_user_id, comment_id) unique constraint is the guard.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..core.errors import StoreUnavailableError
from ..core.resilience import bounded, retry_store_call
from ..models import Comment, Notification, utcnow
from ..schemas import comment_payload, notification_payload
from .mention_parser import strip_mention_markup
from .mention_resolver import MentionResolver
from .profile_directory import ProfileDirectory, UserDirectory, UserRef
from .realtime import EventType, RealtimeHub, case_channel, publish_safely, user_channel

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


# =============================================================================
# HELPERS
# =============================================================================


def truncate_preview(content: str, limit: int = 140) -> str:
    """First ``limit`` characters, cut at a word boundary, with an ellipsis if cut."""
    text = " ".join(strip_mention_markup(content).split())
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if text[limit] != " ":
        boundary = cut.rfind(" ")
        if boundary > 0:
            cut = cut[:boundary]
    return cut.rstrip(" ,.;:") + ELLIPSIS


def notification_title(author_name: str, explicitly_mentioned: bool, is_reply: bool) -> str:
    """Explicit mentions read "mentioned you"; role/everyone reach on a reply reads "replied"."""
    if is_reply and not explicitly_mentioned:
        return f"{author_name} replied"
    return f"{author_name} mentioned you"


@dataclass
class DispatchResult:
    """Outcome of dispatching one comment."""
    comment_id: UUID
    skipped: bool = False
    created: list[UUID] = field(default_factory=list)
    existing: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    @property
    def recipients_attempted(self) -> int:
        return len(self.created) + len(self.existing) + len(self.failed)


# =============================================================================
# DISPATCHER
# =============================================================================


class NotificationDispatcher:
    """Creates Notification rows and realtime pushes for a comment."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: RealtimeHub,
        directory_factory: Callable[[AsyncSession], UserDirectory] = ProfileDirectory,
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._hub = hub
        self._directory_factory = directory_factory
        self._settings = settings or get_settings()

    async def dispatch_by_id(self, comment_id: UUID, case_title: str | None = None) -> DispatchResult:
        """Load a committed comment in a fresh session and dispatch it."""
        async with self._session_factory() as session:
            comment = await retry_store_call(
                lambda: bounded(session.get(Comment, comment_id)),
                description=f"Load comment {comment_id} for dispatch",
            )
        if comment is None:
            logger.warning(f"Comment {comment_id} was deleted before dispatch")
            return DispatchResult(comment_id=comment_id, skipped=True)
        return await self.dispatch(comment, case_title=case_title)

    async def dispatch(
        self,
        comment: Comment,
        case_title: str | None = None,
        publish_comment: bool = True,
    ) -> DispatchResult:
        """Dispatch notifications for a committed comment."""
        result = DispatchResult(comment_id=comment.id)

        if comment.is_system_comment:
            result.skipped = True
            return result

        if publish_comment:
            await publish_safely(
                self._hub,
                case_channel(comment.case_type, comment.case_id),
                EventType.COMMENT_CREATED,
                comment_payload(comment),
            )

        async with self._session_factory() as session:
            resolver = MentionResolver(self._directory_factory(session))
            recipients = await retry_store_call(
                partial(resolver.recipients_for, comment),
                description=f"Recipient lookup for comment {comment.id}",
                on_retry=session.rollback,
            )

            explicit = set(comment.mentioned_user_uuids)
            preview = truncate_preview(comment.content, self._settings.notification_preview_length)

            for recipient in recipients:
                title = notification_title(
                    comment.author_name,
                    explicitly_mentioned=recipient.id in explicit,
                    is_reply=not comment.is_root,
                )
                try:
                    notification, created = await retry_store_call(
                        partial(self._insert_if_absent, session, comment, recipient, title, preview, case_title),
                        description=f"Notification for {recipient.id} on comment {comment.id}",
                        on_retry=session.rollback,
                    )
                except (StoreUnavailableError, SQLAlchemyError) as exc:
                    await session.rollback()
                    result.failed.append(recipient.id)
                    logger.error(
                        f"Failed to write notification for {recipient.id} on comment {comment.id}: {exc}"
                    )
                    continue

                if not created:
                    result.existing.append(recipient.id)
                    continue

                result.created.append(recipient.id)
                await publish_safely(
                    self._hub,
                    user_channel(recipient.id),
                    EventType.NOTIFICATION_CREATED,
                    notification_payload(notification),
                )

        logger.info(
            f"Dispatched comment {comment.id}: {len(result.created)} created, "
            f"{len(result.existing)} existing, {len(result.failed)} failed"
        )
        return result

    async def _insert_if_absent(
        self,
        session: AsyncSession,
        comment: Comment,
        recipient: UserRef,
        title: str,
        preview: str,
        case_title: str | None,
    ) -> tuple[Notification, bool]:
        existing = await self._find(session, recipient.id, comment.id)
        if existing is not None:
            return existing, False

        notification = Notification(
            recipient_user_id=recipient.id,
            comment_id=comment.id,
            case_id=comment.case_id,
            case_type=comment.case_type,
            case_title=case_title,
            sender_id=comment.author_id,
            sender_name=comment.author_name,
            title=title,
            preview=preview,
            is_read=False,
            created_at=utcnow(),
        )
        session.add(notification)
        try:
            await bounded(session.commit())
        except IntegrityError:
            # A concurrent dispatch inserted the same pair first
            await session.rollback()
            existing = await self._find(session, recipient.id, comment.id)
            if existing is None:
                raise
            return existing, False
        return notification, True

    @staticmethod
    async def _find(session: AsyncSession, recipient_id: UUID, comment_id: UUID) -> Notification | None:
        result = await bounded(
            session.execute(
                select(Notification).where(
                    Notification.recipient_user_id == recipient_id,
                    Notification.comment_id == comment_id,
                )
            )
        )
        return result.scalar_one_or_none()


# =============================================================================
# SCHEDULING
# =============================================================================


class DispatchScheduler:
    """Runs dispatch in the background after the comment has been committed.

    Tasks are tracked until done so ``drain()`` can wait for in-flight
    fan-out at shutdown. A dispatch that still fails after its retry is
    logged; the re-dispatch job picks it up later.
    """

    def __init__(self, dispatcher: NotificationDispatcher):
        self._dispatcher = dispatcher
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, comment_id: UUID, case_title: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(
            self._run(comment_id, case_title),
            name=f"dispatch:{comment_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled dispatch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, comment_id: UUID, case_title: str | None) -> DispatchResult | None:
        try:
            return await self._dispatcher.dispatch_by_id(comment_id, case_title=case_title)
        except StoreUnavailableError as exc:
            logger.error(f"Dispatch for comment {comment_id} gave up after retry: {exc}")
            return None
        except Exception:
            logger.exception(f"Dispatch for comment {comment_id} failed")
            return None
