# application/services/event_bus.py
from typing import Dict, Any, Optional, List, Callable
from datetime import datetime
import inspect
import uuid

from domain.models.events import Event
from shared.logging import logger

Subscriber = Callable[[Event], Any]

class EventBus:
    """Channel-scoped publish/subscribe over a bounded durable log.

    The log (Redis or in-memory) owns persistence and capacity; the bus owns
    the in-process subscriber fan-out. The two only meet in ``publish``.
    """

    def __init__(self, event_log, default_source: str = "orchestrator"):
        self.event_log = event_log
        self.default_source = default_source
        self._subscribers: Dict[str, List[Subscriber]] = {}

    async def publish(self, channel: str, event_type: str,
                      payload: Optional[Dict[str, Any]] = None,
                      source: Optional[str] = None) -> Event:
        channel = getattr(channel, "value", channel)
        event = Event(
            event_id=str(uuid.uuid4()),
            channel=channel,
            event_type=event_type,
            payload=payload or {},
            source=source or self.default_source,
            timestamp=datetime.utcnow()
        )

        try:
            await self.event_log.append(event)
        except Exception as e:
            logger.error("Failed to append event to log",
                        channel=channel, event_type=event_type, error=str(e))

        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._subscribers.get(channel, ())):
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("Event subscriber failed",
                            channel=channel, event_type=event_type, error=str(e))

        logger.debug("Event published", channel=channel, event_type=event_type, event_id=event.event_id)
        return event

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a handle that removes it again"""
        channel = getattr(channel, "value", channel)
        self._subscribers.setdefault(channel, []).append(callback)
        logger.info("Subscribed to channel", channel=channel)

        def unsubscribe() -> None:
            current = self._subscribers.get(channel, [])
            self._subscribers[channel] = [cb for cb in current if cb is not callback]

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(getattr(channel, "value", channel), ()))

    async def get_history(self, channel: str, count: int = 10) -> List[Event]:
        """Most recent events on a channel, newest first"""
        return await self.event_log.recent(getattr(channel, "value", channel), count)

    async def get_latest(self, channel: str) -> Optional[Event]:
        return await self.event_log.latest(getattr(channel, "value", channel))
