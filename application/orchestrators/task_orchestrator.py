# application/orchestrators/task_orchestrator.py
from typing import Dict, Any, Optional, List, Callable
from datetime import datetime
import uuid

from domain.exceptions import (
    BudgetExceededError, DuplicateTaskError, RateLimitedError, TaskNotFoundError
)
from domain.models.events import Channel
from domain.models.safety_state import AgentActivity
from domain.models.task_state import Task, TaskStatus, Capability, route_capability
from shared.logging import logger

SUGGESTED_PRIORITY = 3
SUGGESTED_ESTIMATED_COST = 0.5

class TaskOrchestrator:
    """Polls approved tasks and runs them one at a time through capability agents.

    Budget and circuit breaker are consulted before every task; either one
    blocking ends the batch with an alert. Agents may also propose new work
    through ``suggest_task``, which always lands in ``pending_validation``.
    """

    def __init__(self, task_store, budget, circuit_breaker, rate_limiter,
                 event_bus, alerts, notifier, agents: Dict[Capability, Any],
                 batch_size: int = 5, dashboard_url: Optional[str] = None):
        self.task_store = task_store
        self.budget = budget
        self.circuit_breaker = circuit_breaker
        self.rate_limiter = rate_limiter
        self.event_bus = event_bus
        self.alerts = alerts
        self.notifier = notifier
        self.agents = agents
        self.batch_size = batch_size
        self.dashboard_url = dashboard_url

    async def process_approved_tasks(self, keep_going: Optional[Callable[[], bool]] = None) -> Dict[str, Any]:
        """One poll cycle: run up to ``batch_size`` approved tasks in priority order.

        ``keep_going`` is consulted before each task so a scheduler stop ends
        the batch after the task in flight.
        """
        summary = {"fetched": 0, "completed": 0, "failed": 0, "halted": None}

        try:
            tasks = await self.task_store.fetch_approved(self.batch_size)
        except Exception as e:
            logger.error("Failed to fetch approved tasks", error=str(e))
            await self.circuit_breaker.on_failure(e)
            summary["halted"] = "store_unavailable"
            return summary

        summary["fetched"] = len(tasks)
        if not tasks:
            return summary

        logger.info("Processing approved tasks", count=len(tasks))

        for task in tasks:
            if keep_going is not None and not keep_going():
                summary["halted"] = "stopped"
                break

            halted = await self._blocked_by_safety_gate()
            if halted:
                summary["halted"] = halted
                break

            outcome = await self._execute_task(task)
            if outcome == "budget_exceeded":
                summary["failed"] += 1
                summary["halted"] = "budget"
                break

            summary[outcome] += 1
            if outcome == "failed" and self.circuit_breaker.tripped:
                summary["halted"] = "circuit_tripped"
                break

        return summary

    async def _blocked_by_safety_gate(self) -> Optional[str]:
        check = self.budget.check()
        if not check.allowed:
            await self.alerts.raise_alert(
                "budget_exhausted",
                "Daily budget exhausted",
                {**self.budget.state.to_dict(), "reason": check.reason}
            )
            return "budget"

        if self.circuit_breaker.tripped:
            await self.alerts.raise_alert(
                "circuit_tripped",
                "Task execution halted by circuit breaker",
                self.circuit_breaker.snapshot().to_dict()
            )
            return "circuit_tripped"

        return None

    async def _execute_task(self, task: Task) -> str:
        try:
            task = await self.task_store.transition(task.task_id, TaskStatus.EXECUTING)
        except Exception as e:
            logger.error("Failed to mark task executing", task_id=task.task_id, error=str(e))
            await self.circuit_breaker.on_failure(e)
            return "failed"

        capability = route_capability(task.assignee, task.task_type)
        agent = self.agents[capability]
        logger.info("Executing task", task_id=task.task_id, title=task.title,
                   capability=capability.value, priority=task.priority)

        try:
            result = await self.circuit_breaker.call(agent.execute, task)
        except BudgetExceededError as e:
            await self._record_failure(task, f"Budget exceeded: {e}")
            await self.alerts.raise_alert(
                "budget_exhausted",
                "Daily budget exhausted during a task",
                {**self.budget.state.to_dict(), "task_id": task.task_id}
            )
            return "budget_exceeded"
        except Exception as e:
            await self._record_failure(task, str(e) or type(e).__name__)
            return "failed"

        try:
            await self.task_store.transition(task.task_id, TaskStatus.COMPLETED, result=result)
        except Exception as e:
            logger.error("Failed to persist completed task", task_id=task.task_id, error=str(e))
            await self.circuit_breaker.on_failure(e)
            await self._record_failure(task, f"Result could not be saved: {e}")
            return "failed"

        await self.event_bus.publish(Channel.TASKS, "task_completed", {
            "task_id": task.task_id,
            "title": task.title,
            "capability": capability.value,
            "result": result
        })
        return "completed"

    async def _record_failure(self, task: Task, error: str):
        logger.error("Task failed", task_id=task.task_id, title=task.title, error=error)
        try:
            await self.task_store.transition(task.task_id, TaskStatus.FAILED, error=error)
        except Exception as e:
            logger.error("Failed to persist failed task", task_id=task.task_id, error=str(e))
            await self.circuit_breaker.on_failure(e)

        await self.event_bus.publish(Channel.TASKS, "task_failed", {
            "task_id": task.task_id,
            "title": task.title,
            "error": error
        })

    async def suggest_task(self, title: str, task_type: str, description: str = "",
                           assignee: Optional[str] = None,
                           input_data: Optional[Dict[str, Any]] = None) -> Task:
        """Agent-proposed task; needs human approval before it can run"""
        if not self.rate_limiter.try_consume():
            raise RateLimitedError(
                f"At most {self.rate_limiter.max_per_window} task suggestions per hour"
            )

        try:
            await self._ensure_unique_title(title)
        except DuplicateTaskError:
            self.rate_limiter.release()
            raise

        task = await self.task_store.create_task(Task(
            task_id=str(uuid.uuid4()),
            title=title,
            task_type=task_type,
            status=TaskStatus.PENDING_VALIDATION,
            description=description,
            assignee=assignee,
            input_data=input_data or {},
            priority=SUGGESTED_PRIORITY,
            estimated_cost=SUGGESTED_ESTIMATED_COST,
            can_create_subtasks=False,
            source="agent"
        ))

        await self._notify_reviewer(task)
        await self.event_bus.publish(Channel.TASKS, "task_suggested", {
            "task_id": task.task_id,
            "title": task.title,
            "task_type": task.task_type
        })
        return task

    async def create_task(self, title: str, task_type: str, description: str = "",
                          assignee: Optional[str] = None,
                          input_data: Optional[Dict[str, Any]] = None,
                          priority: int = 3,
                          can_create_subtasks: bool = False) -> Task:
        """Human-authored task; deduplicated by title but not rate limited"""
        await self._ensure_unique_title(title)

        task = await self.task_store.create_task(Task(
            task_id=str(uuid.uuid4()),
            title=title,
            task_type=task_type,
            status=TaskStatus.PENDING_VALIDATION,
            description=description,
            assignee=assignee,
            input_data=input_data or {},
            priority=priority,
            can_create_subtasks=can_create_subtasks,
            source="human"
        ))

        await self.event_bus.publish(Channel.TASKS, "task_created", {
            "task_id": task.task_id,
            "title": task.title,
            "task_type": task.task_type
        })
        return task

    async def approve_task(self, task_id: str) -> Task:
        """Human validation: pending_validation -> approved"""
        task = await self.task_store.transition(task_id, TaskStatus.APPROVED)
        await self.event_bus.publish(Channel.TASKS, "task_approved", {
            "task_id": task.task_id,
            "title": task.title
        })
        return task

    async def get_task(self, task_id: str) -> Task:
        task = await self.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    async def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 20) -> List[Task]:
        return await self.task_store.list_tasks(status, limit)

    async def _ensure_unique_title(self, title: str):
        existing = await self.task_store.find_active_by_title(title)
        if existing is not None:
            logger.info("Duplicate task refused", title=title,
                       existing_task_id=existing.task_id, existing_status=existing.status.value)
            raise DuplicateTaskError(title, existing.task_id)

    async def _notify_reviewer(self, task: Task):
        lines = [
            f"Title: {task.title}",
            f"Type: {task.task_type}",
            f"Description: {task.description or '-'}",
        ]
        if self.dashboard_url:
            lines.append(f"Validate it at {self.dashboard_url}")
        try:
            await self.notifier.notify(f"New task to validate: {task.title}", "\n".join(lines))
        except Exception as e:
            logger.warning("Reviewer notification failed", task_id=task.task_id, error=str(e))

    def set_agents_activity(self, activity: AgentActivity):
        for agent in self.agents.values():
            agent.set_activity(activity)

    def get_agents(self) -> Dict[str, Any]:
        return {
            capability.value: {**agent.status.to_dict(), "tools": list(agent.tool_names)}
            for capability, agent in self.agents.items()
        }

    async def heartbeat(self, running: bool) -> None:
        await self.event_bus.publish(Channel.SYNC, "heartbeat", {
            "status": "active" if running else "stopped",
            "timestamp": datetime.utcnow().isoformat(),
            "agents": {name: info["status"] for name, info in self.get_agents().items()},
            "budget": self.budget.state.to_dict(),
            "circuit": self.circuit_breaker.snapshot().to_dict()
        })
