"""Tests for the open/resolved state machine."""

from uuid import uuid4

import pytest

from case_threads.core.errors import ForbiddenError, NotRootCommentError
from case_threads.models import CaseType, CommentStatus, Reply, RootComment, UserRole
from case_threads.services import StatusLifecycle

from conftest import FakeClock


def make_root(status=CommentStatus.OPEN) -> RootComment:
    comment_id = uuid4()
    return RootComment(
        id=comment_id,
        case_id=uuid4(),
        case_type=CaseType.PRIVATE,
        root_comment_id=comment_id,
        status=status,
    )


@pytest.fixture
def lifecycle() -> StatusLifecycle:
    return StatusLifecycle(clock=FakeClock())


class TestTransitions:

    def test_resolve_records_actor_and_time(self, lifecycle):
        root = make_root()
        actor = uuid4()

        changed = lifecycle.transition(root, CommentStatus.RESOLVED, actor, UserRole.TECHNICIAN)

        assert changed is True
        assert root.status == CommentStatus.RESOLVED
        assert root.resolved_by == actor
        assert root.resolved_at is not None

    def test_reopen_clears_resolution(self, lifecycle):
        root = make_root(CommentStatus.RESOLVED)
        root.resolved_by = uuid4()

        assert lifecycle.transition(root, CommentStatus.OPEN, uuid4(), UserRole.KOORDINATOR) is True
        assert root.status == CommentStatus.OPEN
        assert root.resolved_by is None
        assert root.resolved_at is None

    def test_same_state_is_noop(self, lifecycle):
        root = make_root(CommentStatus.RESOLVED)

        assert lifecycle.transition(root, CommentStatus.RESOLVED, uuid4(), UserRole.ADMIN) is False

    def test_reply_rejected_and_unchanged(self, lifecycle):
        reply = Reply(id=uuid4(), parent_comment_id=uuid4(), root_comment_id=uuid4())

        with pytest.raises(NotRootCommentError):
            lifecycle.transition(reply, CommentStatus.RESOLVED, uuid4(), UserRole.ADMIN)

        assert not hasattr(reply, "status")

    def test_customer_may_not_change_status(self, lifecycle):
        root = make_root()

        with pytest.raises(ForbiddenError):
            lifecycle.transition(root, CommentStatus.RESOLVED, uuid4(), UserRole.CUSTOMER)

        assert root.status == CommentStatus.OPEN

    def test_activity_reopens_only_resolved(self, lifecycle):
        open_root = make_root()
        resolved_root = make_root(CommentStatus.RESOLVED)

        assert lifecycle.reopen_for_activity(open_root) is False
        assert lifecycle.reopen_for_activity(resolved_root) is True
        assert resolved_root.status == CommentStatus.OPEN
