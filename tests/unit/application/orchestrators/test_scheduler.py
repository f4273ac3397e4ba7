# tests/unit/application/orchestrators/test_scheduler.py
import asyncio
from unittest.mock import MagicMock

import pytest

from application.orchestrators.scheduler import Scheduler
from domain.exceptions import CircuitTrippedError
from domain.models.events import Channel
from domain.models.safety_state import AgentActivity
from infrastructure.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

class FakeOrchestrator:
    def __init__(self, work_seconds: float = 0.0):
        self.work_seconds = work_seconds
        self.polls = 0
        self.finished = 0
        self.heartbeats = 0
        self.activity = None

    async def process_approved_tasks(self, keep_going=None):
        self.polls += 1
        await asyncio.sleep(self.work_seconds)
        self.finished += 1
        return {"fetched": 0, "completed": 0, "failed": 0, "halted": None}

    async def heartbeat(self, running: bool):
        self.heartbeats += 1

    def set_agents_activity(self, activity: AgentActivity):
        self.activity = activity

class BatchOrchestrator(FakeOrchestrator):
    """Runs batches of two tasks, honouring keep_going between them"""

    def __init__(self, work_seconds: float):
        super().__init__(work_seconds)
        self.in_flight = 0
        self.max_in_flight = 0
        self.tasks_run = 0

    async def process_approved_tasks(self, keep_going=None):
        self.polls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(2):
                if keep_going is not None and not keep_going():
                    break
                await asyncio.sleep(self.work_seconds)
                self.tasks_run += 1
        finally:
            self.in_flight -= 1
        self.finished += 1
        return {"fetched": 2, "completed": 0, "failed": 0, "halted": None}

@pytest.fixture
def breaker():
    return CircuitBreaker("task_execution", CircuitBreakerConfig())

class TestScheduler:

    @pytest.mark.asyncio
    async def test_start_polls_and_beats(self, breaker, event_bus):
        orchestrator = FakeOrchestrator()
        scheduler = Scheduler(orchestrator, breaker, event_bus,
                              task_check_interval=0.01, heartbeat_interval=0.01)

        response = await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert response["status"] == "started"
        assert orchestrator.polls >= 2
        assert orchestrator.heartbeats >= 2
        assert orchestrator.activity == AgentActivity.STOPPED
        assert (await event_bus.get_latest(Channel.SYNC)).event_type == "orchestrator_stopped"

    @pytest.mark.asyncio
    async def test_start_twice_reports_already_running(self, breaker, event_bus):
        scheduler = Scheduler(FakeOrchestrator(), breaker, event_bus, 60, 60)
        await scheduler.start()

        response = await scheduler.start()
        await scheduler.stop()

        assert response["status"] == "already_running"

    @pytest.mark.asyncio
    async def test_stop_when_stopped(self, breaker, event_bus):
        scheduler = Scheduler(FakeOrchestrator(), breaker, event_bus)

        response = await scheduler.stop()

        assert response["status"] == "already_stopped"
        assert response["running"] is False

    @pytest.mark.asyncio
    async def test_refuses_to_start_while_tripped(self, breaker, event_bus):
        for _ in range(3):
            await breaker.on_failure("boom")
        scheduler = Scheduler(FakeOrchestrator(), breaker, event_bus)

        with pytest.raises(CircuitTrippedError):
            await scheduler.start()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_reset_circuit_restarts_breaker(self, breaker, event_bus):
        for _ in range(3):
            await breaker.on_failure("boom")
        scheduler = Scheduler(FakeOrchestrator(), breaker, event_bus, 60, 60)

        response = await scheduler.start(reset_circuit=True)
        await scheduler.stop()

        assert response["status"] == "started"
        assert not breaker.tripped
        assert breaker.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_trip_stops_the_scheduler(self, breaker, event_bus):
        scheduler = Scheduler(FakeOrchestrator(), breaker, event_bus, 60, 60)
        await scheduler.start()

        for _ in range(3):
            await breaker.on_failure("boom")

        assert not scheduler.is_running
        event = await event_bus.get_latest(Channel.SYNC)
        assert event.payload == {"reason": "circuit_tripped"}

    @pytest.mark.asyncio
    async def test_stop_lets_task_in_flight_finish(self, breaker, event_bus):
        orchestrator = FakeOrchestrator(work_seconds=0.05)
        scheduler = Scheduler(orchestrator, breaker, event_bus, 60, 60)
        await scheduler.start()
        await asyncio.sleep(0.01)

        await scheduler.stop()
        assert orchestrator.finished == 0

        await asyncio.sleep(0.1)
        assert orchestrator.finished == 1
        assert orchestrator.polls == 1

    @pytest.mark.asyncio
    async def test_restart_waits_for_previous_batch(self, breaker, event_bus):
        orchestrator = BatchOrchestrator(work_seconds=0.05)
        scheduler = Scheduler(orchestrator, breaker, event_bus, 60, 60)
        await scheduler.start()
        await asyncio.sleep(0.01)

        await scheduler.stop()
        response = await scheduler.start()

        # The old batch ended after its first task; the restart polled afresh
        assert response["status"] == "started"
        assert orchestrator.tasks_run >= 1
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert orchestrator.max_in_flight == 1
        assert orchestrator.polls == 2
        assert orchestrator.tasks_run == 3

    def test_status_before_start(self, breaker, event_bus):
        scheduler = Scheduler(MagicMock(), breaker, event_bus, 60, 30)

        status = scheduler.status()

        assert status["running"] is False
        assert status["started_at"] is None
        assert status["task_check_interval"] == 60
