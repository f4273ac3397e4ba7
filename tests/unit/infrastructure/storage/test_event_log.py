# tests/unit/infrastructure/storage/test_event_log.py
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from domain.models.events import Event
from infrastructure.storage.event_log import InMemoryEventLog, RedisEventLog

def make_event(n: int, channel: str = "tasks") -> Event:
    return Event(event_id=f"e-{n}", channel=channel, event_type="tick",
                 payload={"n": n}, timestamp=datetime(2025, 1, 1, 12, 0, n))

@pytest.fixture
def redis_client():
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True, True])
    client.pipeline.return_value.__aenter__.return_value = pipe
    client.pipeline.return_value.__aexit__.return_value = None
    client.lrange = AsyncMock(return_value=[])
    client.get = AsyncMock(return_value=None)
    client.llen = AsyncMock(return_value=0)
    client.aclose = AsyncMock()
    client.pipe = pipe
    return client

class TestInMemoryEventLog:

    @pytest.mark.asyncio
    async def test_size_is_bounded(self):
        log = InMemoryEventLog(capacity=3)
        for n in range(5):
            await log.append(make_event(n))

        assert await log.size("tasks") == 3
        assert [e.payload["n"] for e in await log.recent("tasks", 10)] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_unknown_channel_is_empty(self):
        log = InMemoryEventLog()
        assert await log.recent("nope", 5) == []
        assert await log.latest("nope") is None

class TestRedisEventLog:

    @pytest.mark.asyncio
    async def test_append_pushes_trims_and_sets_latest(self, redis_client):
        log = RedisEventLog("redis://unused", capacity=100, client=redis_client)

        await log.append(make_event(1))

        pipe = redis_client.pipe
        pipe.lpush.assert_called_once()
        assert pipe.lpush.call_args[0][0] == "events:tasks"
        pipe.ltrim.assert_called_once_with("events:tasks", 0, 99)
        assert pipe.set.call_args[0][0] == "latest:tasks"
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recent_parses_and_skips_malformed(self, redis_client):
        redis_client.lrange.return_value = [make_event(2).to_json(), "not json", make_event(1).to_json()]
        log = RedisEventLog("redis://unused", client=redis_client)

        events = await log.recent("tasks", 3)

        assert [e.event_id for e in events] == ["e-2", "e-1"]
        redis_client.lrange.assert_awaited_once_with("events:tasks", 0, 2)

    @pytest.mark.asyncio
    async def test_latest_round_trips_event(self, redis_client):
        redis_client.get.return_value = make_event(7, "sync").to_json()
        log = RedisEventLog("redis://unused", client=redis_client)

        event = await log.latest("sync")

        assert event == make_event(7, "sync")
