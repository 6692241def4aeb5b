"""
Tests for store timeouts and retries.

These tests verify:
1. bounded() turns timeouts and dropped connections into StoreUnavailableError
2. retry_store_call() retries once, rolling back in between
3. Other errors are not retried
4. A comment write survives one lost connection on commit
"""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from case_threads.core.errors import StoreUnavailableError
from case_threads.core.resilience import bounded, retry_store_call
from case_threads.models import CaseType, Comment
from case_threads.services import CreateCommentInput

from conftest import count_rows


def connection_lost() -> OperationalError:
    return OperationalError("COMMIT", {}, Exception("server closed the connection unexpectedly"))


class TestBounded:

    async def test_result_passes_through(self):
        async def answer():
            return 42

        assert await bounded(answer(), timeout=1) == 42

    async def test_timeout(self):
        with pytest.raises(StoreUnavailableError, match="exceeded"):
            await bounded(asyncio.sleep(1), timeout=0.01)

    async def test_connection_error_translated(self):
        async def broken():
            raise connection_lost()

        with pytest.raises(StoreUnavailableError, match="connection failed"):
            await bounded(broken(), timeout=1)

    async def test_other_database_errors_untouched(self):
        async def duplicate():
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(IntegrityError):
            await bounded(duplicate(), timeout=1)


class TestRetry:

    async def test_second_attempt_succeeds(self):
        calls = []
        rollbacks = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise StoreUnavailableError("connection reset")
            return "saved"

        async def rollback():
            rollbacks.append(1)

        result = await retry_store_call(operation, description="Save", on_retry=rollback)

        assert result == "saved"
        assert len(calls) == 2
        assert len(rollbacks) == 1

    async def test_gives_up_after_configured_attempts(self):
        calls = []

        async def operation():
            calls.append(1)
            raise StoreUnavailableError("still down")

        with pytest.raises(StoreUnavailableError, match="still down"):
            await retry_store_call(operation, description="Save", max_attempts=2, base_delay=0)

        assert len(calls) == 2

    async def test_domain_errors_not_retried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await retry_store_call(operation, description="Save")

        assert len(calls) == 1


class TestCommentStoreRecovery:

    async def test_create_survives_one_lost_commit(self, store, session, session_factory, people, monkeypatch):
        real_commit = session.commit
        attempts = []

        async def flaky_commit():
            attempts.append(1)
            if len(attempts) == 1:
                raise connection_lost()
            await real_commit()

        monkeypatch.setattr(session, "commit", flaky_commit)

        comment = await store.create(
            CreateCommentInput(case_id=uuid4(), case_type=CaseType.PRIVATE, content="Andra försöket"),
            people.tove,
        )

        assert len(attempts) == 2
        assert await count_rows(session_factory, Comment, Comment.id == comment.id) == 1
