"""
Ticket Aggregator: viewer-relative ticket views over fetched comments.

A ticket is a root comment plus every comment reached from it by
following ``parent_comment_id``. Stats are computed for one viewer:

- unanswered_mentions: comments mentioning the viewer with no later
  comment by the viewer in the thread
- outgoing questions: users the viewer mentioned, counted once per user;
  answered when that user posts after the viewer's latest mention of them
- unread_count: others' non-system comments without a viewer receipt

Pure and deterministic: no I/O, identical inputs give identical tickets.
Replies whose chain does not reach a root in the input (deleted or
missing parent, or a cycle) are left out.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from ..models import Comment, CommentStatus, RootComment

UNKNOWN_USER_NAME = "Okänd"


class ReceiptLike(Protocol):
    comment_id: UUID
    user_id: UUID


class TicketPriority(str, Enum):
    """Worklist badge, most urgent first."""

    UNANSWERED_MENTION = "unanswered_mention"
    REPLY_TO_ME = "reply_to_me"
    AWAITING_ANSWERS = "awaiting_answers"
    ALL_ANSWERED = "all_answered"
    UNREAD = "unread"
    NONE = "none"


@dataclass(frozen=True)
class Ticket:
    """A root comment, its replies, and stats for one viewer."""
    root_comment: Comment
    replies: tuple[Comment, ...]
    status: CommentStatus
    unanswered_mentions: int
    outgoing_questions_total: int
    outgoing_questions_answered: int
    outgoing_questions_pending_names: tuple[str, ...]
    unread_count: int
    replies_to_my_comments: int
    new_comments: int
    latest_activity_at: datetime

    @property
    def comments(self) -> tuple[Comment, ...]:
        return (self.root_comment, *self.replies)

    @property
    def needs_action(self) -> bool:
        return self.unanswered_mentions > 0

    @property
    def waiting_on_others(self) -> bool:
        return self.outgoing_questions_answered < self.outgoing_questions_total

    @property
    def priority(self) -> TicketPriority:
        if self.unanswered_mentions > 0:
            return TicketPriority.UNANSWERED_MENTION
        if self.replies_to_my_comments > 0:
            return TicketPriority.REPLY_TO_ME
        if self.waiting_on_others:
            return TicketPriority.AWAITING_ANSWERS
        if self.outgoing_questions_total > 0:
            return TicketPriority.ALL_ANSWERED
        if self.unread_count > 0:
            return TicketPriority.UNREAD
        return TicketPriority.NONE


class TicketAggregator:
    """Groups comments into tickets and computes viewer stats."""

    def build_tickets(
        self,
        viewer_id: UUID,
        comments: Iterable[Comment],
        read_receipts: Iterable[ReceiptLike],
    ) -> list[Ticket]:
        """Tickets for ``viewer_id``, sorted by latest activity (newest first)."""
        by_id = {comment.id: comment for comment in comments}
        read_ids = {r.comment_id for r in read_receipts if r.user_id == viewer_id}

        threads: dict[UUID, list[Comment]] = {}
        root_cache: dict[UUID, UUID | None] = {}
        for comment in by_id.values():
            root_id = _find_root(comment.id, by_id, root_cache)
            if root_id is not None:
                threads.setdefault(root_id, []).append(comment)

        tickets = [
            self._build_ticket(viewer_id, by_id[root_id], members, by_id, read_ids)
            for root_id, members in threads.items()
        ]
        return sort_tickets(tickets)

    def _build_ticket(
        self,
        viewer_id: UUID,
        root: Comment,
        members: list[Comment],
        by_id: dict[UUID, Comment],
        read_ids: set[UUID],
    ) -> Ticket:
        replies = sorted((c for c in members if c.id != root.id), key=_chronological)
        thread = [root, *replies]

        viewer_times = [c.created_at for c in thread if c.author_id == viewer_id]
        viewer_last = max(viewer_times) if viewer_times else None

        def from_others(comment: Comment) -> bool:
            return not comment.is_system_comment and comment.author_id != viewer_id

        viewer_key = str(viewer_id)
        unanswered = sum(
            1
            for c in thread
            if from_others(c)
            and viewer_key in c.mentioned_user_ids
            and (viewer_last is None or viewer_last <= c.created_at)
        )

        total, answered, pending = _outgoing_questions(viewer_id, thread)

        unread = [c for c in thread if from_others(c) and c.id not in read_ids]
        replies_to_me = sum(
            1
            for c in unread
            if c.parent_comment_id is not None
            and c.parent_comment_id in by_id
            and by_id[c.parent_comment_id].author_id == viewer_id
        )
        new_comments = sum(
            1
            for c in thread
            if from_others(c) and (viewer_last is None or c.created_at > viewer_last)
        )

        status = root.status if isinstance(root, RootComment) and root.status else CommentStatus.OPEN

        return Ticket(
            root_comment=root,
            replies=tuple(replies),
            status=status,
            unanswered_mentions=unanswered,
            outgoing_questions_total=total,
            outgoing_questions_answered=answered,
            outgoing_questions_pending_names=tuple(pending),
            unread_count=len(unread),
            replies_to_my_comments=replies_to_me,
            new_comments=new_comments,
            latest_activity_at=max(c.created_at for c in thread),
        )


def build_tickets(
    viewer_id: UUID,
    comments: Iterable[Comment],
    read_receipts: Iterable[ReceiptLike],
) -> list[Ticket]:
    return TicketAggregator().build_tickets(viewer_id, comments, read_receipts)


def sort_tickets(tickets: Sequence[Ticket]) -> list[Ticket]:
    """Latest activity first; ties by root creation (newest first), then root id."""
    return sorted(
        tickets,
        key=lambda t: (t.latest_activity_at, t.root_comment.created_at, str(t.root_comment.id)),
        reverse=True,
    )


# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _chronological(comment: Comment) -> tuple[datetime, str]:
    return comment.created_at, str(comment.id)


def _find_root(
    comment_id: UUID,
    by_id: dict[UUID, Comment],
    cache: dict[UUID, UUID | None],
) -> UUID | None:
    """Follow parents up to a root. None for orphans and cycles."""
    path: list[UUID] = []
    seen: set[UUID] = set()
    current: UUID | None = comment_id
    root: UUID | None = None

    while current is not None:
        if current in cache:
            root = cache[current]
            break
        comment = by_id.get(current)
        if comment is None or current in seen:
            root = None
            break
        seen.add(current)
        path.append(current)
        if comment.parent_comment_id is None:
            root = current
            break
        current = comment.parent_comment_id

    for visited in path:
        cache[visited] = root
    return root


def _outgoing_questions(viewer_id: UUID, thread: list[Comment]) -> tuple[int, int, list[str]]:
    """(total, answered, pending names) over users the viewer mentioned."""
    last_mention: dict[UUID, datetime] = {}
    names: dict[UUID, str] = {}
    order: list[UUID] = []

    for comment in thread:
        if comment.author_id != viewer_id or comment.is_system_comment:
            continue
        for user_id in comment.mentioned_user_uuids:
            if user_id == viewer_id:
                continue
            if user_id not in last_mention:
                order.append(user_id)
                names[user_id] = comment.mentioned_name_for(user_id) or UNKNOWN_USER_NAME
            last_mention[user_id] = max(last_mention.get(user_id, comment.created_at), comment.created_at)

    answered = 0
    pending: list[str] = []
    for user_id in order:
        mentioned_at = last_mention[user_id]
        if any(c.author_id == user_id and c.created_at > mentioned_at for c in thread):
            answered += 1
        elif names[user_id] not in pending:
            pending.append(names[user_id])

    return len(order), answered, pending
