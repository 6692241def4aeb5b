"""
Realtime Hub: in-process publish/subscribe keyed by case and by user.

Channels:
- ``case:{case_type}:{case_id}``: comment.created / updated / deleted /
  status_changed for everyone watching a case
- ``user:{user_id}``: notification.created / updated / deleted and
  comment.read for a single recipient

Each subscription owns an ordered queue drained by its own task, so
events on one channel reach a subscriber in publish order and a slow
subscriber never blocks the publisher or other subscribers. A
subscription is an explicit handle; ``close()`` removes it from the hub
and stops its task.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import UUID

from ..core.config import get_settings
from ..core.errors import DeliveryFailedError
from ..models import CaseType, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# EVENTS
# =============================================================================


class EventType:
    COMMENT_CREATED = "comment.created"
    COMMENT_UPDATED = "comment.updated"
    COMMENT_DELETED = "comment.deleted"
    COMMENT_STATUS_CHANGED = "comment.status_changed"
    COMMENT_READ = "comment.read"
    NOTIFICATION_CREATED = "notification.created"
    NOTIFICATION_UPDATED = "notification.updated"
    NOTIFICATION_DELETED = "notification.deleted"


@dataclass(frozen=True)
class RealtimeEvent:
    """A change event pushed to channel subscribers."""
    type: str
    channel: str
    payload: dict[str, Any]
    published_at: datetime = field(default_factory=utcnow)

    def to_message(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "channel": self.channel,
            "published_at": self.published_at.isoformat(),
            "data": self.payload,
        }


EventHandler = Callable[[RealtimeEvent], Awaitable[None]]


def case_channel(case_type: CaseType | str, case_id: UUID) -> str:
    return f"case:{CaseType(case_type).value}:{case_id}"


def user_channel(user_id: UUID) -> str:
    return f"user:{user_id}"


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


class Subscription:
    """Handle for one subscriber on one channel."""

    def __init__(
        self,
        hub: "RealtimeHub",
        channel: str,
        handler: EventHandler,
        queue_size: int,
    ):
        self.channel = channel
        self._hub = hub
        self._handler = handler
        self._queue: asyncio.Queue[RealtimeEvent] = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self._task = asyncio.create_task(self._pump(), name=f"realtime:{channel}")

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: RealtimeEvent) -> bool:
        """Queue an event for delivery. False if closed or backlogged."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued event has been handed to the handler."""
        if not self._closed:
            await self._queue.join()

    async def close(self) -> None:
        """Unsubscribe and stop delivery. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._hub._remove(self)
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    f"Realtime handler failed on {self.channel} for {event.type}: {exc}"
                )
            finally:
                self._queue.task_done()


# =============================================================================
# HUB
# =============================================================================


class RealtimeHub:
    """Channel registry and publisher."""

    def __init__(self, queue_size: int | None = None):
        self._queue_size = queue_size or get_settings().realtime_queue_size
        self._channels: dict[str, list[Subscription]] = {}

    def subscribe(self, channel: str, on_event: EventHandler) -> Subscription:
        subscription = Subscription(self, channel, on_event, self._queue_size)
        self._channels.setdefault(channel, []).append(subscription)
        logger.debug(f"Subscribed to {channel} ({len(self._channels[channel])} subscribers)")
        return subscription

    def subscribe_case(
        self,
        case_type: CaseType | str,
        case_id: UUID,
        on_event: EventHandler,
    ) -> Subscription:
        return self.subscribe(case_channel(case_type, case_id), on_event)

    def subscribe_user(self, user_id: UUID, on_event: EventHandler) -> Subscription:
        return self.subscribe(user_channel(user_id), on_event)

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> int:
        """
        Queue an event for every subscriber of ``channel``.

        Returns the number of subscribers that accepted it. Raises
        DeliveryFailedError if any subscriber could not take the event;
        the others still receive it.
        """
        event = RealtimeEvent(type=event_type, channel=channel, payload=payload)
        subscribers = list(self._channels.get(channel, ()))
        delivered = 0
        rejected = 0
        for subscription in subscribers:
            if subscription.offer(event):
                delivered += 1
            else:
                rejected += 1

        if rejected:
            raise DeliveryFailedError(
                f"{event_type} on {channel}: {rejected} of {len(subscribers)} subscribers backlogged"
            )
        return delivered

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def flush(self) -> None:
        """Wait for all subscribers to drain their queues."""
        for subscribers in list(self._channels.values()):
            for subscription in list(subscribers):
                await subscription.flush()

    async def close(self) -> None:
        """Close every subscription."""
        for subscribers in list(self._channels.values()):
            for subscription in list(subscribers):
                await subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._channels.get(subscription.channel)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._channels[subscription.channel]


async def publish_safely(
    hub: RealtimeHub,
    channel: str,
    event_type: str,
    payload: dict[str, Any],
) -> None:
    """Publish and log delivery failures instead of raising them."""
    try:
        await hub.publish(channel, event_type, payload)
    except DeliveryFailedError as exc:
        logger.error(f"Realtime delivery failed: {exc}")


# Singleton instance
hub = RealtimeHub()
