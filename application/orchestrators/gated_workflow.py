# application/orchestrators/gated_workflow.py
from typing import Dict, Any, Optional, Callable, Awaitable
import asyncio

from domain.exceptions import ToolExecutionError, WorkflowStateError
from domain.models.events import Channel
from domain.models.workflow import (
    DEFAULT_WORKFLOW, SecurityMode, StepOutcome, StepType,
    WorkflowDefinition, WorkflowRun, WorkflowStep
)
from shared.logging import logger, log_validation_request

StepExecutor = Callable[[WorkflowStep, str], Awaitable[Dict[str, Any]]]

USD_PER_THOUSAND_TOKENS = 0.01

GENERATION_STEPS = (
    StepType.CODE_GENERATION,
    StepType.CONTENT_GENERATION,
    StepType.CLASSIFICATION_TEST,
)

GENERATION_PREAMBLE = (
    "You are producing artefacts for a supervised test workflow. "
    "Return the requested content as plain text. Do not change any external data."
)

def step_cost(step: WorkflowStep) -> float:
    return step.token_cost / 1000 * USD_PER_THOUSAND_TOKENS

class WorkflowStepExecutor:
    """Default step runner: tool steps go through a dispatcher, generation
    steps through the conversation loop, anything else is a recorded no-op"""

    def __init__(self, dispatcher, conversation_loop=None):
        self.dispatcher = dispatcher
        self.conversation_loop = conversation_loop

    async def __call__(self, step: WorkflowStep, run_id: str) -> Dict[str, Any]:
        if step.tool_name:
            result = await self.dispatcher.execute(step.tool_name, step.tool_input or {})
            if result.is_error:
                raise ToolExecutionError(result.error)
            return result.output or {}

        if step.step_type in GENERATION_STEPS and self.conversation_loop is not None:
            result = await self.conversation_loop.run(
                session_id=f"workflow-{run_id}-{step.step_id}",
                user_message=f"{step.title}\n\n{step.description}",
                system_preamble=GENERATION_PREAMBLE,
                tool_names=()
            )
            if not result.success:
                raise ToolExecutionError(result.error or "Generation did not complete")
            return {"text": result.text, "iterations": result.iterations}

        return {"executed": False, "note": f"No runner for {step.step_type.value} steps"}

class GatedWorkflowEngine:
    """Runs a fixed step sequence with human validation gates and its own budget.

    Only one run exists at a time. Every public operation takes the engine
    lock, so a control request can never interleave with a run in progress.
    """

    def __init__(self,
                 step_executor: StepExecutor,
                 definition: WorkflowDefinition = DEFAULT_WORKFLOW,
                 event_bus=None,
                 notifier=None,
                 budget_usd: float = 2.0,
                 alert_usd: float = 0.5,
                 security_mode: SecurityMode = SecurityMode.READ_ONLY):
        self.step_executor = step_executor
        self.definition = definition
        self.event_bus = event_bus
        self.notifier = notifier
        self.budget_usd = budget_usd
        self.alert_usd = alert_usd
        self.security_mode = security_mode
        self.run = WorkflowRun()
        self._alert_sent = False
        self._lock = asyncio.Lock()

    async def start(self) -> Dict[str, Any]:
        async with self._lock:
            if self.run.started:
                raise WorkflowStateError("Workflow already started; reset it first")

            self.run.started = True
            self.run.current_index = 0
            self.run.paused = False
            logger.info("Workflow started", workflow=self.definition.name,
                       steps=len(self.definition), security_mode=self.security_mode.value)

            await self._announce("workflow_started", {"workflow": self.definition.name},
                                 "Workflow started",
                                 f"{self.definition.name}: {len(self.definition)} steps, "
                                 f"budget ${self.budget_usd:.2f}, mode {self.security_mode.value}")
            return await self._advance()

    async def validate(self) -> Dict[str, Any]:
        """Human approval of the paused step; the run moves on to the next one"""
        async with self._lock:
            if not self.run.paused:
                raise WorkflowStateError("Workflow is not waiting for validation")

            step = self.definition.steps[self.run.current_index]
            self.run.paused = False
            self.run.current_index += 1
            logger.info("Workflow step validated", step_id=step.step_id)

            await self._announce("step_validated", {"step_id": step.step_id},
                                 "Step validated", f"{step.step_id} approved, continuing")
            return await self._advance()

    async def reset(self) -> Dict[str, Any]:
        async with self._lock:
            self.run = WorkflowRun()
            self._alert_sent = False
            logger.info("Workflow reset", workflow=self.definition.name)
            await self._publish("workflow_reset", {"workflow": self.definition.name})
            return {"status": "reset"}

    async def _advance(self) -> Dict[str, Any]:
        steps = self.definition.steps

        while True:
            if self.run.current_index >= len(steps):
                self.run.completed = True
                logger.info("Workflow completed", budget_used_usd=round(self.run.budget_used_usd, 4))
                await self._announce("workflow_completed", {"results": len(self.run.results)},
                                     "Workflow completed",
                                     f"All {len(steps)} steps done for ${self.run.budget_used_usd:.3f}")
                return {"status": "completed", "results": [r.to_dict() for r in self.run.results]}

            step = steps[self.run.current_index]
            cost = step_cost(step)

            if self.run.budget_used_usd + cost > self.budget_usd:
                return await self._halt("budget", step,
                                        f"Step {step.step_id} would exceed the ${self.budget_usd:.2f} workflow budget")

            self.run.budget_used_usd += cost
            await self._check_budget_alert()

            outcome = await self._run_step(step, cost)
            self.run.results.append(outcome)
            await self._publish("step_completed", outcome.to_dict())

            if not outcome.success and not outcome.blocked:
                return await self._halt("step_failed", step, outcome.error or "Step failed")

            if step.requires_validation:
                self.run.paused = True
                message = step.validation_message or f"Validate {step.step_id} to continue"
                log_validation_request(step.step_id, step.title, self.run.budget_used_usd, message)
                await self._announce("validation_required",
                                     {"step_id": step.step_id, "title": step.title, "message": message},
                                     "Validation required", message, priority=1)
                return {
                    "status": "paused",
                    "step_id": step.step_id,
                    "message": message,
                    "next_step": "POST /workflow/validate to continue"
                }

            self.run.current_index += 1

    async def _run_step(self, step: WorkflowStep, cost: float) -> StepOutcome:
        if step.performs_write and self.security_mode == SecurityMode.READ_ONLY:
            logger.warning("Workflow step blocked", step_id=step.step_id,
                          external_action=step.external_action.value)
            return StepOutcome(step.step_id, success=False, blocked=True, cost_usd=cost,
                               error="BLOCKED - external writes are disabled in read-only mode")

        logger.info("Running workflow step", step_id=step.step_id, title=step.title)
        try:
            output = await self.step_executor(step, self.run.run_id)
        except Exception as e:
            logger.error("Workflow step failed", step_id=step.step_id, error=str(e))
            return StepOutcome(step.step_id, success=False, cost_usd=cost, error=str(e) or type(e).__name__)

        return StepOutcome(step.step_id, success=True, output=output, cost_usd=cost)

    async def _halt(self, reason: str, step: WorkflowStep, detail: str) -> Dict[str, Any]:
        self.run.stopped_reason = reason
        logger.warning("Workflow stopped", reason=reason, step_id=step.step_id, detail=detail)
        await self._announce("workflow_stopped", {"reason": reason, "step_id": step.step_id, "detail": detail},
                             "Workflow stopped", detail, priority=1)
        return {"status": "stopped", "reason": reason, "step_id": step.step_id, "detail": detail}

    async def _check_budget_alert(self):
        if self._alert_sent or self.run.budget_used_usd < self.alert_usd:
            return
        self._alert_sent = True
        await self._announce("budget_alert", {"budget_used_usd": round(self.run.budget_used_usd, 4)},
                             "Workflow budget alert",
                             f"${self.run.budget_used_usd:.2f} of ${self.budget_usd:.2f} used")

    async def _publish(self, event_type: str, payload: Dict[str, Any]):
        if self.event_bus is not None:
            await self.event_bus.publish(Channel.WORKFLOW, event_type, payload, source="workflow")

    async def _announce(self, event_type: str, payload: Dict[str, Any],
                        title: str, message: str, priority: int = 0):
        await self._publish(event_type, payload)
        if self.notifier is not None:
            await self.notifier.notify(title, message, priority=priority)

    def get_status(self) -> Dict[str, Any]:
        steps = self.definition.steps
        current = steps[self.run.current_index] if self.run.current_index < len(steps) else None
        return {
            "workflow": self.definition.name,
            "run_id": self.run.run_id,
            "status": self.run.status.value,
            "started": self.run.started,
            "paused": self.run.paused,
            "completed": self.run.completed,
            "stopped_reason": self.run.stopped_reason,
            "security_mode": self.security_mode.value,
            "progress": f"{self.run.current_index}/{len(steps)}",
            "current_index": self.run.current_index,
            "current_step": current.to_dict() if current else None,
            "budget": self.get_budget(),
            "results": [r.to_dict() for r in self.run.results],
        }

    def get_budget(self) -> Dict[str, Any]:
        used = self.run.budget_used_usd
        return {
            "used_usd": round(used, 4),
            "max_usd": self.budget_usd,
            "alert_usd": self.alert_usd,
            "remaining_usd": round(max(0.0, self.budget_usd - used), 4),
            "alert_reached": used >= self.alert_usd,
        }
