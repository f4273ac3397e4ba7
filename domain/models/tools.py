# domain/models/tools.py
from dataclasses import dataclass
from typing import Dict, Any, Optional, Callable, Awaitable, Type
from enum import Enum
import json

from pydantic import BaseModel

ToolExecutor = Callable[[BaseModel], Awaitable[Dict[str, Any]]]

class ToolOutcome(Enum):
    OK = "ok"
    UNKNOWN_TOOL = "unknown_tool"
    VALIDATION_ERROR = "validation_error"
    EXECUTION_ERROR = "execution_error"
    BLOCKED = "blocked"

@dataclass(frozen=True)
class Tool:
    """Named capability with a pydantic input schema and an async executor"""
    name: str
    description: str
    input_model: Type[BaseModel]
    executor: ToolExecutor
    privileged: bool = False

    def definition(self) -> Dict[str, Any]:
        """Tool definition in the shape the reasoning gateway expects"""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }

@dataclass(frozen=True)
class ToolResult:
    tool_name: str
    outcome: ToolOutcome
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.outcome != ToolOutcome.OK

    def to_payload(self) -> Dict[str, Any]:
        if self.is_error:
            return {"error": self.error, "kind": self.outcome.value}
        return self.output or {}

    def to_content(self) -> str:
        return json.dumps(self.to_payload(), default=str)
