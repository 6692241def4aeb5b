"""
Tests for the Realtime Hub.

These tests verify:
1. Events reach subscribers of their channel only
2. Per-channel order is publish order
3. Closing a subscription stops delivery
4. A backlogged subscriber raises DeliveryFailedError without
   blocking the others
"""

import asyncio
from uuid import uuid4

import pytest

from case_threads.core.errors import DeliveryFailedError
from case_threads.models import CaseType
from case_threads.services import EventType, RealtimeHub
from case_threads.services.realtime import case_channel, publish_safely, user_channel

from conftest import EventRecorder


class TestChannels:

    def test_channel_names(self):
        case_id, user_id = uuid4(), uuid4()

        assert case_channel(CaseType.BUSINESS, case_id) == f"case:business:{case_id}"
        assert case_channel("contract", case_id) == f"case:contract:{case_id}"
        assert user_channel(user_id) == f"user:{user_id}"

    async def test_events_stay_on_their_channel(self, hub):
        case_id = uuid4()
        watcher, bystander = EventRecorder(), EventRecorder()
        hub.subscribe_case(CaseType.PRIVATE, case_id, watcher)
        hub.subscribe_case(CaseType.PRIVATE, uuid4(), bystander)

        delivered = await hub.publish(case_channel(CaseType.PRIVATE, case_id), EventType.COMMENT_CREATED, {"id": "1"})
        await hub.flush()

        assert delivered == 1
        assert watcher.types == [EventType.COMMENT_CREATED]
        assert bystander.events == []

    async def test_publish_order_preserved(self, hub):
        user_id = uuid4()
        recorder = EventRecorder()
        hub.subscribe_user(user_id, recorder)

        for index in range(20):
            await hub.publish(user_channel(user_id), EventType.NOTIFICATION_CREATED, {"n": index})
        await hub.flush()

        assert [e.payload["n"] for e in recorder.events] == list(range(20))

    async def test_publish_without_subscribers(self, hub):
        assert await hub.publish("case:private:nobody", EventType.COMMENT_CREATED, {}) == 0

    async def test_message_shape(self, hub):
        recorder = EventRecorder()
        hub.subscribe("user:x", recorder)

        await hub.publish("user:x", EventType.COMMENT_READ, {"comment_id": "c"})
        await hub.flush()

        message = recorder.events[0].to_message()
        assert message["type"] == "comment.read"
        assert message["channel"] == "user:x"
        assert message["data"] == {"comment_id": "c"}
        assert "published_at" in message


class TestSubscriptions:

    async def test_close_stops_delivery(self, hub):
        recorder = EventRecorder()
        subscription = hub.subscribe("user:y", recorder)

        await subscription.close()
        await subscription.close()
        delivered = await hub.publish("user:y", EventType.COMMENT_READ, {})

        assert subscription.closed is True
        assert delivered == 0
        assert hub.subscriber_count("user:y") == 0

    async def test_failing_handler_does_not_stop_the_pump(self, hub):
        seen = []

        async def handler(event):
            if event.payload["n"] == 0:
                raise RuntimeError("socket closed")
            seen.append(event.payload["n"])

        hub.subscribe("user:z", handler)
        await hub.publish("user:z", EventType.COMMENT_READ, {"n": 0})
        await hub.publish("user:z", EventType.COMMENT_READ, {"n": 1})
        await hub.flush()

        assert seen == [1]


class TestBackpressure:

    async def test_backlogged_subscriber_raises_but_others_receive(self):
        hub = RealtimeHub(queue_size=1)
        gate = asyncio.Event()

        async def stuck(event):
            await gate.wait()

        fast = EventRecorder()
        hub.subscribe("case:private:x", stuck)
        hub.subscribe("case:private:x", fast)

        await hub.publish("case:private:x", EventType.COMMENT_CREATED, {"n": 1})
        await asyncio.sleep(0)
        await hub.publish("case:private:x", EventType.COMMENT_CREATED, {"n": 2})
        await asyncio.sleep(0)
        with pytest.raises(DeliveryFailedError):
            await hub.publish("case:private:x", EventType.COMMENT_CREATED, {"n": 3})

        await publish_safely(hub, "case:private:x", EventType.COMMENT_CREATED, {"n": 4})

        gate.set()
        await hub.flush()
        assert [e.payload["n"] for e in fast.events] == [1, 2, 3, 4]
        await hub.close()
