# domain/models/task_state.py
from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional, FrozenSet
from datetime import datetime
from enum import Enum

from domain.exceptions import InvalidTransitionError

class TaskStatus(Enum):
    PENDING_VALIDATION = "pending_validation"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

# The only moves a task may make; anything else is rejected
ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING_VALIDATION: frozenset({TaskStatus.APPROVED}),
    TaskStatus.APPROVED: frozenset({TaskStatus.EXECUTING}),
    TaskStatus.EXECUTING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

ACTIVE_STATUSES = (
    TaskStatus.PENDING_VALIDATION,
    TaskStatus.APPROVED,
    TaskStatus.EXECUTING,
)

def validate_transition(current: TaskStatus, target: TaskStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is a lifecycle edge"""
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Task cannot move from '{current.value}' to '{target.value}'"
        )

class Capability(Enum):
    ANALYTICAL = "analytical"
    OPERATIONAL = "operational"
    TECHNICAL = "technical"

# Keyword routing on task_type, checked in order; no match means operational
CAPABILITY_KEYWORDS = (
    (Capability.ANALYTICAL, ("analyze", "analyse", "report")),
    (Capability.TECHNICAL, ("code", "debug")),
)

def route_capability(assignee: Optional[str], task_type: Optional[str]) -> Capability:
    """Explicit assignment wins, otherwise match keywords in the task type"""
    if assignee:
        try:
            return Capability(assignee.lower())
        except ValueError:
            pass

    lowered = (task_type or "").lower()
    for capability, keywords in CAPABILITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return capability
    return Capability.OPERATIONAL

@dataclass(frozen=True)
class Task:
    """Immutable snapshot of a task row"""
    task_id: str
    title: str
    task_type: str
    status: TaskStatus
    description: str = ""
    assignee: Optional[str] = None
    input_data: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    priority: int = 3
    estimated_cost: float = 0.0
    can_create_subtasks: bool = False
    source: str = "human"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def transitioned(self, target: TaskStatus, **changes: Any) -> "Task":
        """Return a copy in the target status; the move must be a lifecycle edge"""
        validate_transition(self.status, target)
        return replace(self, status=target, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "task_type": self.task_type,
            "status": self.status.value,
            "description": self.description,
            "assignee": self.assignee,
            "input_data": self.input_data,
            "result": self.result,
            "error": self.error,
            "priority": self.priority,
            "estimated_cost": self.estimated_cost,
            "can_create_subtasks": self.can_create_subtasks,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
