# application/services/alerts.py
from typing import Dict, Any, Optional
import json

from domain.models.events import Channel, AlertPriority
from domain.models.safety_state import CircuitSnapshot
from shared.logging import logger

class AlertService:
    """Raise operator alerts: an event on the alerts channel plus a notification"""

    def __init__(self, event_bus, notifier):
        self.event_bus = event_bus
        self.notifier = notifier

    async def raise_alert(self, alert_type: str, title: str,
                          details: Optional[Dict[str, Any]] = None,
                          priority: AlertPriority = AlertPriority.HIGH) -> None:
        details = details or {}
        logger.warning("Alert raised", alert_type=alert_type, title=title,
                      priority=priority.name.lower(), details=details)

        await self.event_bus.publish(Channel.ALERTS, alert_type, {
            "title": title,
            "priority": priority.name.lower(),
            "details": details
        })
        await self.notifier.notify(
            title,
            json.dumps(details, indent=2, default=str),
            priority=priority.value
        )

    async def on_circuit_trip(self, snapshot: CircuitSnapshot) -> None:
        """Trip listener for the circuit breaker"""
        await self.raise_alert(
            "circuit_breaker_tripped",
            "Circuit breaker tripped: task execution stopped",
            snapshot.to_dict(),
            priority=AlertPriority.HIGH
        )
