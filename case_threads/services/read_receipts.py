"""
Read Receipt Tracker: records who has seen which comment.

Read state is best-effort telemetry. ``mark_read`` is insert-if-absent,
never errors for duplicates, self-reads or system comments, retries a
transient failure once, and then drops it with a warning.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import StoreUnavailableError
from ..core.resilience import bounded, retry_store_call
from ..models import Comment, ReadReceipt, utcnow
from .profile_directory import ProfileDirectory, UserDirectory
from .realtime import EventType, RealtimeHub, publish_safely, user_channel

logger = logging.getLogger(__name__)

UNKNOWN_READER_NAME = "Okänd"


@dataclass(frozen=True)
class ReceiptView:
    """One "seen by" entry for the comment author."""
    user_id: UUID
    user_name: str
    read_at: datetime


class ReadReceiptTracker:
    """Writes and reads per-(comment, user) read receipts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: RealtimeHub | None = None,
        directory_factory: Callable[[AsyncSession], UserDirectory] = ProfileDirectory,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._hub = hub
        self._directory_factory = directory_factory
        self._clock = clock

    async def mark_read(self, comment_id: UUID, user_id: UUID) -> bool:
        """
        Record that ``user_id`` has seen ``comment_id``.

        Returns True if a new receipt was written. Never raises for
        store trouble; the failure is logged and dropped.
        """
        try:
            created = await retry_store_call(
                lambda: self._insert_if_absent(comment_id, user_id),
                description=f"Read receipt {comment_id}/{user_id}",
            )
        except (StoreUnavailableError, SQLAlchemyError) as exc:
            logger.warning(f"Dropping read receipt for {comment_id}/{user_id}: {exc}")
            return False

        if created and self._hub is not None:
            await publish_safely(
                self._hub,
                user_channel(user_id),
                EventType.COMMENT_READ,
                {"comment_id": str(comment_id), "user_id": str(user_id)},
            )
        return created

    async def mark_many_read(self, comment_ids: Sequence[UUID], user_id: UUID) -> int:
        """Mark several comments read (e.g. opening a thread). Returns receipts written."""
        written = 0
        for comment_id in comment_ids:
            if await self.mark_read(comment_id, user_id):
                written += 1
        return written

    async def get_receipts(self, comment_id: UUID) -> list[ReceiptView]:
        """Readers of a comment, earliest first, with display names."""
        async with self._session_factory() as session:
            result = await bounded(
                session.execute(
                    select(ReadReceipt)
                    .where(ReadReceipt.comment_id == comment_id)
                    .order_by(ReadReceipt.read_at, ReadReceipt.user_id)
                )
            )
            receipts = result.scalars().all()
            users = await self._directory_factory(session).resolve_users(r.user_id for r in receipts)

        return [
            ReceiptView(
                user_id=receipt.user_id,
                user_name=users[receipt.user_id].display_name if receipt.user_id in users else UNKNOWN_READER_NAME,
                read_at=receipt.read_at,
            )
            for receipt in receipts
        ]

    async def get_read_count(self, comment_id: UUID) -> int:
        async with self._session_factory() as session:
            result = await bounded(
                session.execute(
                    select(func.count()).select_from(ReadReceipt).where(ReadReceipt.comment_id == comment_id)
                )
            )
            return result.scalar_one()
