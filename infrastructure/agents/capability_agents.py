# infrastructure/agents/capability_agents.py
from typing import Dict, Any, Iterable, Tuple
from datetime import datetime
import json

from domain.exceptions import BudgetExceededError, TaskExecutionError
from domain.models.conversation import LoopOutcome
from domain.models.safety_state import AgentActivity, AgentStatus
from domain.models.task_state import Capability, Task
from infrastructure.tools.catalogue import CAPABILITY_TOOLS
from shared.logging import log_task_execution

PREAMBLES = {
    Capability.ANALYTICAL: (
        "You are the analytical agent of an online store's operations team. "
        "You read sales figures and catalogue data, explain what they mean and "
        "recommend concrete next actions. Use the tools to fetch real numbers; "
        "never invent figures. Finish with a short plain-text summary."
    ),
    Capability.OPERATIONAL: (
        "You are the operational agent of an online store's operations team. "
        "You carry out catalogue and content changes that a human has already "
        "approved. Change only what the task asks for. If a tool reports that "
        "it is blocked, stop and explain. Finish with a short plain-text summary."
    ),
    Capability.TECHNICAL: (
        "You are the technical agent of an online store's operations team. "
        "You read and edit files in the site repository. Any write is deployed "
        "immediately, so read the file first and keep changes minimal. "
        "Finish with a short plain-text summary of what changed."
    ),
}

class CapabilityAgent:
    """Runs one task through the conversation loop with a fixed preamble and tool subset"""

    def __init__(self, capability: Capability, conversation_loop,
                 tool_names: Iterable[str], preamble: str):
        self.capability = capability
        self.conversation_loop = conversation_loop
        self.tool_names: Tuple[str, ...] = tuple(tool_names)
        self.preamble = preamble
        self.status = AgentStatus()

    @property
    def name(self) -> str:
        return self.capability.value

    def set_activity(self, activity: AgentActivity) -> None:
        self.status.activity = activity
        self.status.last_activity = datetime.utcnow()

    def tools_for(self, task: Task) -> Tuple[str, ...]:
        if task.can_create_subtasks:
            return self.tool_names
        return tuple(name for name in self.tool_names if name != "suggest_task")

    @staticmethod
    def brief(task: Task) -> str:
        lines = [
            f"Task: {task.title}",
            f"Type: {task.task_type}",
        ]
        if task.description:
            lines.append(f"Description: {task.description}")
        if task.input_data:
            lines.append(f"Input: {json.dumps(task.input_data, default=str)}")
        return "\n".join(lines)

    async def execute(self, task: Task) -> Dict[str, Any]:
        """Run the task; raises on any outcome other than a completed conversation"""
        start_time = datetime.utcnow()
        self.set_activity(AgentActivity.BUSY)

        try:
            result = await self.conversation_loop.run(
                session_id=f"task-{task.task_id}",
                user_message=self.brief(task),
                system_preamble=self.preamble,
                tool_names=self.tools_for(task)
            )
        except Exception as e:
            self.set_activity(AgentActivity.ERROR)
            log_task_execution(
                capability=self.name,
                task_id=task.task_id,
                execution_time_ms=self._elapsed_ms(start_time),
                success=False,
                error_message=str(e)
            )
            raise

        execution_time = self._elapsed_ms(start_time)
        log_task_execution(
            capability=self.name,
            task_id=task.task_id,
            execution_time_ms=execution_time,
            success=result.success,
            iterations=result.iterations,
            error_message=result.error
        )

        if not result.success:
            self.set_activity(AgentActivity.ERROR)
            if result.outcome == LoopOutcome.BUDGET_EXCEEDED:
                raise BudgetExceededError(result.error or "Daily budget exhausted")
            raise TaskExecutionError(result.error or "Task did not complete", result.outcome.value)

        self.status.tasks_completed += 1
        self.set_activity(AgentActivity.IDLE)
        return {
            "capability": self.name,
            "summary": result.text,
            "iterations": result.iterations,
            "tool_calls": result.tool_calls_made,
            "input_tokens": result.usage.input_tokens,
            "output_tokens": result.usage.output_tokens,
            "execution_time_ms": execution_time,
        }

    @staticmethod
    def _elapsed_ms(start_time: datetime) -> int:
        return int((datetime.utcnow() - start_time).total_seconds() * 1000)

def build_agents(conversation_loop) -> Dict[Capability, CapabilityAgent]:
    return {
        capability: CapabilityAgent(
            capability,
            conversation_loop,
            CAPABILITY_TOOLS[capability.value],
            PREAMBLES[capability]
        )
        for capability in Capability
    }
