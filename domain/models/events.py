# domain/models/events.py
from dataclasses import dataclass, field
from typing import Dict, Any
from datetime import datetime
from enum import Enum
import json

class Channel(str, Enum):
    TASKS = "tasks"
    ALERTS = "alerts"
    SYNC = "sync"
    COMMERCE = "commerce"
    WORKFLOW = "workflow"

class AlertPriority(Enum):
    LOW = -1
    NORMAL = 0
    HIGH = 1

@dataclass(frozen=True)
class Event:
    event_id: str
    channel: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    source: str = "orchestrator"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.event_id,
            "channel": self.channel,
            "type": self.event_type,
            "payload": self.payload,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            event_id=data["id"],
            channel=data["channel"],
            event_type=data["type"],
            payload=data.get("payload") or {},
            source=data.get("source", "orchestrator"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
