# domain/models/conversation.py
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime
from enum import Enum

Message = Dict[str, Any]

class LoopState(Enum):
    AWAITING_REPLY = "awaiting_reply"
    EXECUTING_TOOLS = "executing_tools"
    TERMINAL = "terminal"

class LoopOutcome(Enum):
    COMPLETED = "completed"
    ITERATION_LIMIT = "iteration_limit"
    BUDGET_EXCEEDED = "budget_exceeded"

@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(self.input_tokens + other.input_tokens,
                     self.output_tokens + other.output_tokens)

@dataclass(frozen=True)
class ToolCall:
    call_id: str
    name: str
    input: Dict[str, Any]

@dataclass(frozen=True)
class GatewayReply:
    """One response from the reasoning gateway"""
    text: str
    tool_calls: Tuple[ToolCall, ...]
    usage: Usage
    model: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def requests_tools(self) -> bool:
        return len(self.tool_calls) > 0

    def assistant_content(self) -> List[Dict[str, Any]]:
        """Content blocks to append to the history as the assistant turn"""
        blocks: List[Dict[str, Any]] = []
        if self.text:
            blocks.append({"type": "text", "text": self.text})
        for call in self.tool_calls:
            blocks.append({"type": "tool_use", "id": call.call_id,
                           "name": call.name, "input": call.input})
        return blocks

@dataclass(frozen=True)
class ConversationResult:
    success: bool
    outcome: LoopOutcome
    text: str
    iterations: int
    usage: Usage
    tool_calls_made: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "text": self.text,
            "iterations": self.iterations,
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "tool_calls_made": self.tool_calls_made,
            "error": self.error,
        }

def _is_plain_user_turn(message: Message) -> bool:
    return message.get("role") == "user" and isinstance(message.get("content"), str)

@dataclass
class ConversationSession:
    """Ordered, bounded message history for one conversation"""
    session_id: str
    messages: List[Message] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def trim(self, max_messages: int) -> None:
        """Keep the newest messages; the history must start on a plain user turn"""
        if len(self.messages) <= max_messages:
            return
        kept = self.messages[-max_messages:]
        # A leading tool_result or assistant turn would orphan its partner
        while kept and not _is_plain_user_turn(kept[0]):
            kept.pop(0)
        self.messages = kept
