"""
Status Lifecycle: the open/resolved state machine for tickets.

    [open] --resolve--> [resolved] --reopen--> [open]

Status exists only on RootComment. A transition to the current state is
a no-op. A new reply in a resolved thread reopens it automatically.
"""

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID

from ..core.errors import ForbiddenError, NotRootCommentError
from ..models import Comment, CommentStatus, RootComment, UserRole, utcnow

logger = logging.getLogger(__name__)

STATUS_ROLES = frozenset({UserRole.ADMIN, UserRole.KOORDINATOR, UserRole.TECHNICIAN})


class StatusLifecycle:
    """Applies status transitions to root comments (in memory, no I/O)."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    @staticmethod
    def can_change_status(role: UserRole) -> bool:
        return role in STATUS_ROLES

    def transition(
        self,
        comment: Comment,
        target: CommentStatus,
        actor_id: UUID,
        actor_role: UserRole,
    ) -> bool:
        """
        Move ``comment`` to ``target``.

        Returns True if the status changed.

        Raises:
            NotRootCommentError: comment is a reply
            ForbiddenError: actor role may not change status
        """
        if not isinstance(comment, RootComment):
            raise NotRootCommentError(
                f"Comment {comment.id} is a reply; status lives on its root {comment.root_comment_id}"
            )
        if not self.can_change_status(actor_role):
            raise ForbiddenError(f"Role {actor_role.value} may not change ticket status")

        current = comment.status or CommentStatus.OPEN
        if current == target:
            return False

        if target == CommentStatus.RESOLVED:
            self.resolve(comment, actor_id)
        else:
            self.reopen(comment)
        return True

    def resolve(self, root: RootComment, actor_id: UUID) -> None:
        root.status = CommentStatus.RESOLVED
        root.resolved_at = self._clock()
        root.resolved_by = actor_id
        logger.info(f"Ticket {root.id} resolved by {actor_id}")

    def reopen(self, root: RootComment) -> None:
        root.status = CommentStatus.OPEN
        root.resolved_at = None
        root.resolved_by = None
        logger.info(f"Ticket {root.id} reopened")

    def reopen_for_activity(self, root: RootComment) -> bool:
        """Reopen a resolved ticket because a new reply arrived."""
        if root.status != CommentStatus.RESOLVED:
            return False
        self.reopen(root)
        return True
