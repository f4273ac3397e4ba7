# application/orchestrators/scheduler.py
from typing import Dict, Any, Optional, Callable, Awaitable
from datetime import datetime
import asyncio

from domain.exceptions import CircuitTrippedError
from domain.models.events import Channel
from domain.models.safety_state import AgentActivity, CircuitSnapshot
from shared.logging import logger

class Scheduler:
    """Interval timers driving the task poll and the heartbeat.

    Stopping only prevents new pickups: a poll cycle already running is
    allowed to finish its current task before the loop exits. A restart
    waits for that cycle, so two batches never run side by side.
    """

    def __init__(self, orchestrator, circuit_breaker, event_bus,
                 task_check_interval: float = 60.0,
                 heartbeat_interval: float = 30.0):
        self.orchestrator = orchestrator
        self.circuit_breaker = circuit_breaker
        self.event_bus = event_bus
        self.task_check_interval = task_check_interval
        self.heartbeat_interval = heartbeat_interval
        self.started_at: Optional[datetime] = None
        self.last_poll_at: Optional[datetime] = None
        self._running = False
        self._generation = 0
        self._inflight: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()
        self._tasks: Dict[str, asyncio.Task] = {}

        circuit_breaker.add_trip_listener(self._on_circuit_trip)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, reset_circuit: bool = False) -> Dict[str, Any]:
        async with self._start_lock:
            return await self._start(reset_circuit)

    async def _start(self, reset_circuit: bool) -> Dict[str, Any]:
        if self._running:
            return {"status": "already_running", **self.status()}

        # A batch left over from the previous run must finish before a new poll loop exists
        if self._inflight is not None and not self._inflight.done():
            logger.info("Waiting for in-flight batch before restart")
            await asyncio.wait([self._inflight])
            if self._running:
                return {"status": "already_running", **self.status()}

        if self.circuit_breaker.tripped:
            if not reset_circuit:
                raise CircuitTrippedError(
                    "Circuit breaker is tripped; restart with reset_circuit=true after fixing the cause"
                )
            await self.circuit_breaker.restart()

        self._running = True
        self._generation += 1
        generation = self._generation
        self.started_at = datetime.utcnow()
        self.orchestrator.set_agents_activity(AgentActivity.IDLE)
        self._tasks = {
            "task_poll": asyncio.create_task(
                self._run_every(generation, self.task_check_interval, self._poll_once)),
            "heartbeat": asyncio.create_task(
                self._run_every(generation, self.heartbeat_interval, self._heartbeat_once)),
        }

        logger.info("Scheduler started",
                   task_check_interval=self.task_check_interval,
                   heartbeat_interval=self.heartbeat_interval)
        await self.event_bus.publish(Channel.SYNC, "orchestrator_started", {
            "started_at": self.started_at.isoformat()
        })
        return {"status": "started", **self.status()}

    async def stop(self, reason: str = "manual") -> Dict[str, Any]:
        if not self._running:
            return {"status": "already_stopped", **self.status()}

        self._running = False
        self.orchestrator.set_agents_activity(AgentActivity.STOPPED)
        # Sleeping loops are cancelled; a loop mid-cycle sees _running and exits on its own
        for task in self._tasks.values():
            if not task.done() and task is not asyncio.current_task():
                task.cancel()
        self._tasks = {}

        logger.info("Scheduler stopped", reason=reason)
        await self.event_bus.publish(Channel.SYNC, "orchestrator_stopped", {"reason": reason})
        return {"status": "stopped", **self.status()}

    async def _on_circuit_trip(self, snapshot: CircuitSnapshot):
        await self.stop(reason="circuit_tripped")

    def _is_current(self, generation: int) -> bool:
        return self._running and self._generation == generation

    async def _run_every(self, generation: int, interval: float,
                         action: Callable[[int], Awaitable[None]]):
        try:
            while self._is_current(generation):
                await action(generation)
                if not self._is_current(generation):
                    break
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            pass

    async def _poll_once(self, generation: int):
        self.last_poll_at = datetime.utcnow()
        self._inflight = asyncio.ensure_future(
            self.orchestrator.process_approved_tasks(lambda: self._is_current(generation)))
        try:
            summary = await asyncio.shield(self._inflight)
            if summary.get("fetched"):
                logger.info("Poll cycle finished", **summary)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Poll cycle failed", error=str(e))

    async def _heartbeat_once(self, generation: int):
        try:
            await self.orchestrator.heartbeat(self._running)
        except Exception as e:
            logger.error("Heartbeat failed", error=str(e))

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
            "task_check_interval": self.task_check_interval,
            "heartbeat_interval": self.heartbeat_interval,
        }
