# domain/models/safety_state.py
from dataclasses import dataclass
from typing import Dict, Any, Optional
from datetime import datetime
from enum import Enum

@dataclass(frozen=True)
class BudgetState:
    """Daily reasoning-gateway spend; one row per date"""
    date: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    api_calls: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "tokens_used": self.tokens_used,
            "cost_usd": round(self.cost_usd, 6),
            "api_calls": self.api_calls,
        }

@dataclass(frozen=True)
class BudgetCheck:
    allowed: bool
    reason: Optional[str] = None

@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens"""
    input_per_million: float
    output_per_million: float

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.input_per_million +
                output_tokens * self.output_per_million) / 1_000_000

@dataclass(frozen=True)
class CircuitSnapshot:
    consecutive_errors: int
    tripped: bool
    last_error: Optional[str] = None
    tripped_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutive_errors": self.consecutive_errors,
            "tripped": self.tripped,
            "last_error": self.last_error,
            "tripped_at": self.tripped_at.isoformat() if self.tripped_at else None,
        }

@dataclass(frozen=True)
class RateWindow:
    """Hourly task-suggestion counter; window_start is a monotonic timestamp"""
    window_start: float
    count: int = 0

class AgentActivity(Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"

@dataclass
class AgentStatus:
    activity: AgentActivity = AgentActivity.STOPPED
    last_activity: Optional[datetime] = None
    tasks_completed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.activity.value,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "tasks_completed": self.tasks_completed,
        }
