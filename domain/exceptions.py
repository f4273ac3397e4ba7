# domain/exceptions.py
from typing import Any, Dict, List, Optional

class AgentRuntimeError(Exception):
    """Base class for all orchestration runtime errors"""
    pass

class ToolValidationError(AgentRuntimeError):
    """Tool input rejected by its declared schema; the executor never ran"""

    def __init__(self, tool_name: str, errors: List[Dict[str, Any]]):
        self.tool_name = tool_name
        self.errors = errors
        super().__init__(f"Invalid input for tool '{tool_name}': {errors}")

class ToolExecutionError(AgentRuntimeError):
    pass

class BudgetExceededError(AgentRuntimeError):
    pass

class RateLimitedError(AgentRuntimeError):
    pass

class DuplicateTaskError(AgentRuntimeError):

    def __init__(self, title: str, existing_task_id: Optional[str] = None):
        self.title = title
        self.existing_task_id = existing_task_id
        super().__init__(f"A task titled '{title}' is already in progress")

class CircuitTrippedError(AgentRuntimeError):
    pass

class ExternalCallFailure(AgentRuntimeError):
    """Network, timeout or protocol failure talking to an external system"""

    def __init__(self, system: str, message: str):
        self.system = system
        super().__init__(f"{system}: {message}")

class InvalidTransitionError(AgentRuntimeError):
    pass

class TaskNotFoundError(AgentRuntimeError):
    pass

class WorkflowStateError(AgentRuntimeError):
    pass

class TaskExecutionError(AgentRuntimeError):
    """A task ran but did not reach a successful result"""

    def __init__(self, message: str, outcome: Optional[str] = None):
        self.outcome = outcome
        super().__init__(message)
