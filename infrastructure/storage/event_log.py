# infrastructure/storage/event_log.py
from collections import deque
from typing import Deque, Dict, List, Optional
import json

import redis.asyncio as async_redis

from domain.models.events import Event
from shared.logging import logger

class InMemoryEventLog:
    """Bounded per-channel event log held in process memory"""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._channels: Dict[str, Deque[Event]] = {}
        self._latest: Dict[str, Event] = {}

    async def append(self, event: Event) -> None:
        log = self._channels.setdefault(event.channel, deque(maxlen=self.capacity))
        # Newest first; maxlen evicts from the right (oldest)
        log.appendleft(event)
        self._latest[event.channel] = event

    async def recent(self, channel: str, count: int) -> List[Event]:
        log = self._channels.get(channel)
        if not log or count <= 0:
            return []
        return list(log)[:count]

    async def latest(self, channel: str) -> Optional[Event]:
        return self._latest.get(channel)

    async def size(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self):
        pass

class RedisEventLog:
    """Bounded per-channel event log stored as Redis lists"""

    EVENTS_KEY = "events:{channel}"
    LATEST_KEY = "latest:{channel}"

    def __init__(self, redis_url: str, capacity: int = 100,
                 client: Optional[async_redis.Redis] = None):
        self.capacity = capacity
        self.redis = client or async_redis.from_url(redis_url, decode_responses=True)

    async def append(self, event: Event) -> None:
        payload = event.to_json()
        events_key = self.EVENTS_KEY.format(channel=event.channel)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lpush(events_key, payload)
            pipe.ltrim(events_key, 0, self.capacity - 1)
            pipe.set(self.LATEST_KEY.format(channel=event.channel), payload)
            await pipe.execute()

    async def recent(self, channel: str, count: int) -> List[Event]:
        if count <= 0:
            return []
        raw = await self.redis.lrange(self.EVENTS_KEY.format(channel=channel), 0, count - 1)
        events = []
        for item in raw or []:
            try:
                events.append(Event.from_dict(json.loads(item)))
            except (ValueError, KeyError) as e:
                logger.warning("Skipping malformed event", channel=channel, error=str(e))
        return events

    async def latest(self, channel: str) -> Optional[Event]:
        raw = await self.redis.get(self.LATEST_KEY.format(channel=channel))
        if not raw:
            return None
        return Event.from_dict(json.loads(raw))

    async def size(self, channel: str) -> int:
        return await self.redis.llen(self.EVENTS_KEY.format(channel=channel))

    async def close(self):
        await self.redis.aclose()
        logger.info("Redis event log closed")
