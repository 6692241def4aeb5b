"""
Notification Inbox: per-user reads and updates of notification rows.

Rows are only ever created by the NotificationDispatcher. This module
lists, counts, marks and deletes them for their recipient; a user can
never touch another user's notifications.
"""

import logging
from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import NotificationNotFoundError
from ..core.resilience import bounded, retry_store_call
from ..models import Notification, utcnow
from ..schemas import notification_payload
from .realtime import EventType, RealtimeHub, publish_safely, user_channel

logger = logging.getLogger(__name__)


class NotificationInbox:
    """Notification queries and state changes for one store session."""

    def __init__(
        self,
        session: AsyncSession,
        hub: RealtimeHub | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._hub = hub
        self._clock = clock

    async def list_notifications(
        self,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        query: str | None = None,
    ) -> Sequence[Notification]:
        """Newest first. ``query`` filters title, preview, sender and case title."""
        stmt = select(Notification).where(Notification.recipient_user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        if query and query.strip():
            pattern = f"%{query.strip()}%"
            stmt = stmt.where(or_(
                Notification.title.ilike(pattern),
                Notification.preview.ilike(pattern),
                Notification.sender_name.ilike(pattern),
                Notification.case_title.ilike(pattern),
            ))
        stmt = (
            stmt.order_by(Notification.created_at.desc(), Notification.id)
            .offset(offset)
            .limit(limit)
        )

        async def fetch() -> Sequence[Notification]:
            result = await bounded(self._session.execute(stmt))
            return result.scalars().all()

        return await retry_store_call(fetch, description=f"List notifications for {user_id}")

    async def unread_count(self, user_id: UUID) -> int:
        async def fetch() -> int:
            result = await bounded(
                self._session.execute(
                    select(func.count()).select_from(Notification).where(
                        Notification.recipient_user_id == user_id,
                        Notification.is_read.is_(False),
                    )
                )
            )
            return result.scalar_one()

        return await retry_store_call(fetch, description=f"Unread count for {user_id}")

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = await self._get_owned_or_raise(notification_id, user_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = self._clock()
            await bounded(self._session.commit())
            await self._publish(user_id, EventType.NOTIFICATION_UPDATED, notification_payload(notification))
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        """Mark every unread notification read. Returns how many changed."""
        result = await bounded(
            self._session.execute(
                select(Notification.id).where(
                    Notification.recipient_user_id == user_id,
                    Notification.is_read.is_(False),
                )
            )
        )
        ids = list(result.scalars())
        if not ids:
            return 0

        await bounded(
            self._session.execute(
                update(Notification)
                .where(Notification.id.in_(ids))
                .values(is_read=True, read_at=self._clock())
            )
        )
        await bounded(self._session.commit())
        logger.info(f"Marked {len(ids)} notifications read for {user_id}")
        await self._publish(user_id, EventType.NOTIFICATION_UPDATED, {"all_read": True, "updated": len(ids)})
        return len(ids)

    async def delete(self, notification_id: UUID, user_id: UUID) -> None:
        await self._get_owned_or_raise(notification_id, user_id)
        await bounded(self._session.execute(
            delete(Notification).where(Notification.id == notification_id)
        ))
        await bounded(self._session.commit())
        await self._publish(user_id, EventType.NOTIFICATION_DELETED, {"id": str(notification_id)})

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _get_owned_or_raise(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = await bounded(self._session.get(Notification, notification_id))
        if notification is None or notification.recipient_user_id != user_id:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        return notification

    async def _publish(self, user_id: UUID, event_type: str, payload: dict) -> None:
        if self._hub is not None:
            await publish_safely(self._hub, user_channel(user_id), event_type, payload)
