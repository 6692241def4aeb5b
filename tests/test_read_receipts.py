"""
Tests for the Read Receipt Tracker.

These tests verify:
1. mark_read is insert-if-absent
2. Self-reads and system comments are ignored
3. Store failures are dropped, never raised
4. Receipts list readers with display names
"""

from uuid import uuid4

import pytest

from case_threads.core.errors import StoreUnavailableError
from case_threads.models import CaseType, ReadReceipt
from case_threads.services import CreateCommentInput, EventType, ReadReceiptTracker
from case_threads.services.read_receipts import UNKNOWN_READER_NAME

from conftest import EventRecorder, FakeClock, count_rows


CASE_ID = uuid4()


@pytest.fixture
async def comment(store, people):
    return await store.create(
        CreateCommentInput(case_id=CASE_ID, case_type=CaseType.CONTRACT, content="Besök bokat"),
        people.admin,
    )


class TestMarkRead:
    """Writing receipts."""

    async def test_first_read_writes_receipt(self, tracker, comment, people, session_factory):
        assert await tracker.mark_read(comment.id, people.tove.id) is True
        assert await count_rows(session_factory, ReadReceipt) == 1

    async def test_repeat_read_is_noop(self, tracker, comment, people, session_factory):
        await tracker.mark_read(comment.id, people.tove.id)

        assert await tracker.mark_read(comment.id, people.tove.id) is False
        assert await count_rows(session_factory, ReadReceipt) == 1

    async def test_author_reading_own_comment_ignored(self, tracker, comment, people, session_factory):
        assert await tracker.mark_read(comment.id, people.admin.id) is False
        assert await count_rows(session_factory, ReadReceipt) == 0

    async def test_system_comment_ignored(self, tracker, store, people, session_factory):
        system = await store.create_system_comment(CASE_ID, CaseType.CONTRACT, "Avtal förnyat", "contract_renewed")

        assert await tracker.mark_read(system.id, people.tove.id) is False
        assert await count_rows(session_factory, ReadReceipt) == 0

    async def test_missing_comment_ignored(self, tracker, people):
        assert await tracker.mark_read(uuid4(), people.tove.id) is False

    async def test_mark_many_counts_new_receipts(self, tracker, comment, store, people):
        other = await store.create(
            CreateCommentInput(case_id=CASE_ID, case_type=CaseType.CONTRACT, content="Mer info"),
            people.tim,
        )
        await tracker.mark_read(comment.id, people.tove.id)

        written = await tracker.mark_many_read([comment.id, other.id], people.tove.id)

        assert written == 1

    async def test_new_receipt_pushed_to_reader(self, tracker, comment, people, hub):
        recorder = EventRecorder()
        hub.subscribe_user(people.tove.id, recorder)

        await tracker.mark_read(comment.id, people.tove.id)
        await tracker.mark_read(comment.id, people.tove.id)
        await hub.flush()

        assert recorder.types == [EventType.COMMENT_READ]

    async def test_store_failure_is_dropped(self, session_factory, comment, people):
        class BrokenTracker(ReadReceiptTracker):
            async def _insert_if_absent(self, comment_id, user_id):
                raise StoreUnavailableError("timeout")

        tracker = BrokenTracker(session_factory)

        assert await tracker.mark_read(comment.id, people.tove.id) is False


class TestReceipts:
    """Reading receipts back."""

    async def test_receipts_in_read_order_with_names(self, session_factory, hub, comment, people):
        tracker = ReadReceiptTracker(session_factory, hub=hub, clock=FakeClock())
        await tracker.mark_read(comment.id, people.tove.id)
        await tracker.mark_read(comment.id, people.koordinator.id)

        receipts = await tracker.get_receipts(comment.id)

        assert [r.user_name for r in receipts] == ["Tove Tekniker", "Karl Koordinator"]
        assert receipts[0].read_at < receipts[1].read_at
        assert await tracker.get_read_count(comment.id) == 2

    async def test_unknown_reader_gets_placeholder_name(self, session, session_factory, comment):
        stranger = uuid4()
        session.add(ReadReceipt(comment_id=comment.id, user_id=stranger))
        await session.commit()
        tracker = ReadReceiptTracker(session_factory)

        [receipt] = await tracker.get_receipts(comment.id)

        assert receipt.user_id == stranger
        assert receipt.user_name == UNKNOWN_READER_NAME
