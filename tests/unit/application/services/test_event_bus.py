# tests/unit/application/services/test_event_bus.py
import pytest

from application.services.event_bus import EventBus
from domain.models.events import Channel
from infrastructure.storage.event_log import InMemoryEventLog

class FailingLog(InMemoryEventLog):
    async def append(self, event):
        raise ConnectionError("redis unavailable")

class TestEventBus:

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, event_bus):
        for i in range(3):
            await event_bus.publish(Channel.TASKS, "task_created", {"n": i})

        history = await event_bus.get_history(Channel.TASKS, 10)

        assert [e.payload["n"] for e in history] == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_capacity_evicts_oldest(self):
        bus = EventBus(InMemoryEventLog(capacity=100))
        for i in range(101):
            await bus.publish("tasks", "tick", {"n": i})

        history = await bus.get_history("tasks", 200)

        assert len(history) == 100
        assert history[0].payload["n"] == 100
        assert history[-1].payload["n"] == 1

    @pytest.mark.asyncio
    async def test_history_count_limits_result(self, event_bus):
        for i in range(5):
            await event_bus.publish(Channel.ALERTS, "alert", {"n": i})

        history = await event_bus.get_history(Channel.ALERTS, 2)

        assert [e.payload["n"] for e in history] == [4, 3]

    @pytest.mark.asyncio
    async def test_channels_are_independent(self, event_bus):
        await event_bus.publish(Channel.TASKS, "task_created")
        await event_bus.publish(Channel.SYNC, "heartbeat")

        assert len(await event_bus.get_history(Channel.TASKS)) == 1
        assert (await event_bus.get_latest(Channel.SYNC)).event_type == "heartbeat"
        assert await event_bus.get_latest(Channel.COMMERCE) is None

    @pytest.mark.asyncio
    async def test_subscribers_receive_events(self, event_bus):
        received = []

        async def on_event(event):
            received.append(event.event_type)

        event_bus.subscribe(Channel.TASKS, on_event)
        event_bus.subscribe(Channel.TASKS, lambda event: received.append("sync:" + event.event_type))

        await event_bus.publish(Channel.TASKS, "task_completed")

        assert received == ["task_completed", "sync:task_completed"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_delivery(self, event_bus):
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        event_bus.subscribe(Channel.ALERTS, broken)
        event_bus.subscribe(Channel.ALERTS, lambda event: received.append(event))

        event = await event_bus.publish(Channel.ALERTS, "budget_exhausted")

        assert received == [event]
        assert len(await event_bus.get_history(Channel.ALERTS)) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, event_bus):
        received = []
        unsubscribe = event_bus.subscribe(Channel.TASKS, received.append)

        unsubscribe()
        await event_bus.publish(Channel.TASKS, "task_created")

        assert received == []
        assert event_bus.subscriber_count(Channel.TASKS) == 0

    @pytest.mark.asyncio
    async def test_log_failure_still_notifies_subscribers(self):
        bus = EventBus(FailingLog())
        received = []
        bus.subscribe("sync", received.append)

        await bus.publish("sync", "heartbeat", {"status": "active"})

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_event_carries_source_and_id(self, event_bus):
        event = await event_bus.publish(Channel.WORKFLOW, "step_completed", source="workflow")

        assert event.source == "workflow"
        assert event.channel == "workflow"
        assert event.event_id
