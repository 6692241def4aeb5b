"""
Ticket Service: loads a viewer's threads and builds their worklist.

A viewer is involved in a thread when they authored a comment in it, were
mentioned by name in it, or received a notification for one of its
comments. Those threads are loaded whole, with the viewer's read
receipts, and handed to the TicketAggregator.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable
from uuid import UUID

from sqlalchemy import String, cast, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.resilience import bounded, retry_store_call
from ..models import Comment, CommentStatus, Notification, ReadReceipt, RootComment, utcnow
from .ticket_aggregator import Ticket, TicketAggregator

logger = logging.getLogger(__name__)

RESOLVED_STATS_WINDOW = timedelta(days=30)


class TicketScope(str, Enum):
    MINE_ACTIVE = "mine-active"
    MINE_ARCHIVED = "mine-archived"


class TicketDirection(str, Enum):
    """incoming: the viewer owes an answer. outgoing: the viewer awaits answers."""
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    ALL = "all"


@dataclass
class TicketPage:
    items: list[Ticket]
    total: int
    limit: int
    offset: int


@dataclass
class TicketStats:
    """Counts behind the worklist tabs."""
    active: int
    unanswered_mentions: int
    waiting_on_others: int
    unread_activity: int
    resolved_recently: int


class TicketService:
    """Viewer-relative ticket listings and stats."""

    def __init__(
        self,
        session: AsyncSession,
        aggregator: TicketAggregator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._aggregator = aggregator or TicketAggregator()
        self._clock = clock

    async def list_for_viewer(
        self,
        viewer_id: UUID,
        scope: TicketScope = TicketScope.MINE_ACTIVE,
        limit: int = 50,
        offset: int = 0,
        direction: TicketDirection = TicketDirection.ALL,
        query: str | None = None,
    ) -> TicketPage:
        """
        One page of the viewer's tickets.

        ``direction`` narrows to tickets needing the viewer's answer
        (incoming) or waiting on others (outgoing). ``query`` keeps tickets
        where any non-system comment contains the text, case-insensitively.
        """
        tickets = await self._involved_tickets(viewer_id)
        wanted = CommentStatus.OPEN if scope == TicketScope.MINE_ACTIVE else CommentStatus.RESOLVED
        scoped = [t for t in tickets if t.status == wanted]
        if direction == TicketDirection.INCOMING:
            scoped = [t for t in scoped if t.needs_action]
        elif direction == TicketDirection.OUTGOING:
            scoped = [t for t in scoped if t.waiting_on_others]
        needle = (query or "").strip().lower()
        if needle:
            scoped = [t for t in scoped if _matches(t, needle)]
        return TicketPage(
            items=scoped[offset:offset + limit],
            total=len(scoped),
            limit=limit,
            offset=offset,
        )

    async def stats(self, viewer_id: UUID) -> TicketStats:
        tickets = await self._involved_tickets(viewer_id)
        active = [t for t in tickets if t.status == CommentStatus.OPEN]
        cutoff = self._clock() - RESOLVED_STATS_WINDOW

        resolved_recently = 0
        for ticket in tickets:
            root = ticket.root_comment
            if (
                ticket.status == CommentStatus.RESOLVED
                and isinstance(root, RootComment)
                and root.resolved_at is not None
                and root.resolved_at >= cutoff
            ):
                resolved_recently += 1

        return TicketStats(
            active=len(active),
            unanswered_mentions=sum(1 for t in active if t.needs_action),
            waiting_on_others=sum(1 for t in active if t.waiting_on_others),
            unread_activity=sum(1 for t in active if t.unread_count > 0),
            resolved_recently=resolved_recently,
        )

    async def _involved_tickets(self, viewer_id: UUID) -> list[Ticket]:
        comments, receipts = await retry_store_call(
            lambda: self._load(viewer_id),
            description=f"Load tickets for {viewer_id}",
            on_retry=self._session.rollback,
        )
        return self._aggregator.build_tickets(viewer_id, comments, receipts)

    async def _load(self, viewer_id: UUID) -> tuple[list[Comment], list[ReadReceipt]]:
        involved_roots = union(
            select(Comment.root_comment_id).where(Comment.author_id == viewer_id),
            select(Comment.root_comment_id).where(
                cast(Comment.mentioned_user_ids, String).like(f"%{viewer_id}%")
            ),
            select(Comment.root_comment_id)
            .join(Notification, Notification.comment_id == Comment.id)
            .where(Notification.recipient_user_id == viewer_id),
        ).subquery()

        result = await bounded(
            self._session.execute(
                select(Comment)
                .where(Comment.root_comment_id.in_(select(involved_roots.c.root_comment_id)))
                .order_by(Comment.created_at, Comment.id)
            )
        )
        comments = list(result.scalars().all())
        if not comments:
            return [], []

        receipt_result = await bounded(
            self._session.execute(
                select(ReadReceipt).where(
                    ReadReceipt.user_id == viewer_id,
                    ReadReceipt.comment_id.in_([c.id for c in comments]),
                )
            )
        )
        receipts = list(receipt_result.scalars().all())
        logger.debug(f"Loaded {len(comments)} comments and {len(receipts)} receipts for {viewer_id}")
        return comments, receipts


def _matches(ticket: Ticket, needle: str) -> bool:
    return any(
        needle in comment.content.lower()
        for comment in ticket.comments
        if not comment.is_system_comment
    )
