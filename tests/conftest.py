# tests/conftest.py
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List
from unittest.mock import AsyncMock, MagicMock
import itertools

import pytest

from application.services.budget_governor import BudgetGovernor
from application.services.event_bus import EventBus
from domain.exceptions import TaskNotFoundError
from domain.models.conversation import GatewayReply, ToolCall, Usage
from domain.models.task_state import Task, TaskStatus, ACTIVE_STATUSES
from infrastructure.storage.event_log import InMemoryEventLog
from infrastructure.storage.session_store import InMemorySessionStore

class FakeTaskStore:
    """In-memory stand-in for PostgresTaskStore with the same contract"""

    def __init__(self):
        self.tasks: Dict[str, Task] = {}
        self.fail_fetch = False
        self._sequence = itertools.count()
        self._base_time = datetime(2025, 1, 1, 8, 0, 0)

    async def create_task(self, task: Task) -> Task:
        created_at = self._base_time + timedelta(seconds=next(self._sequence))
        stored = Task(**{**task.__dict__, "created_at": created_at, "updated_at": created_at})
        self.tasks[stored.task_id] = stored
        return stored

    async def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    async def list_tasks(self, status: Optional[TaskStatus] = None, limit: int = 100) -> List[Task]:
        tasks = [t for t in self.tasks.values() if status is None or t.status == status]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)[:limit]

    async def fetch_approved(self, limit: int = 5) -> List[Task]:
        if self.fail_fetch:
            raise ConnectionError("database unavailable")
        approved = [t for t in self.tasks.values() if t.status == TaskStatus.APPROVED]
        return sorted(approved, key=lambda t: (t.priority, t.created_at))[:limit]

    async def find_active_by_title(self, title: str) -> Optional[Task]:
        for task in self.tasks.values():
            if task.title == title and task.status in ACTIVE_STATUSES:
                return task
        return None

    async def transition(self, task_id: str, target: TaskStatus,
                         result: Optional[Dict[str, Any]] = None,
                         error: Optional[str] = None) -> Task:
        current = self.tasks.get(task_id)
        if current is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        changes: Dict[str, Any] = {}
        if result is not None:
            changes["result"] = result
        if error is not None:
            changes["error"] = error
        updated = current.transitioned(target, **changes)
        self.tasks[task_id] = updated
        return updated

    async def add(self, title: str, status: TaskStatus = TaskStatus.APPROVED,
                  task_type: str = "update_catalogue", priority: int = 3,
                  assignee: Optional[str] = None, **fields) -> Task:
        task = Task(task_id=f"task-{len(self.tasks) + 1}", title=title, task_type=task_type,
                    status=status, priority=priority, assignee=assignee, **fields)
        return await self.create_task(task)

class ScriptedGateway:
    """Reasoning gateway stub returning queued replies, or the last one forever"""

    def __init__(self, replies: List[Any]):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system, messages, tools=None) -> GatewayReply:
        self.calls.append({"system": system, "messages": list(messages), "tools": tools})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

class RecordingNotifier:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def notify(self, title: str, message: str, priority: int = 0) -> bool:
        self.sent.append({"title": title, "message": message, "priority": priority})
        return True

    async def close(self):
        pass

def text_reply(text: str, input_tokens: int = 100, output_tokens: int = 50) -> GatewayReply:
    return GatewayReply(text=text, tool_calls=(), usage=Usage(input_tokens, output_tokens),
                        model="claude-sonnet-4-20250514", stop_reason="end_turn")

def tool_reply(*calls: ToolCall, input_tokens: int = 100, output_tokens: int = 50) -> GatewayReply:
    return GatewayReply(text="", tool_calls=tuple(calls), usage=Usage(input_tokens, output_tokens),
                        model="claude-sonnet-4-20250514", stop_reason="tool_use")

class FakeClock:
    """Settable timezone-aware clock"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

@pytest.fixture
def mock_db_pool():
    """Mock asyncpg pool; ``pool.conn`` is the connection handed out by acquire()"""
    pool = MagicMock()
    conn = AsyncMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    pool.acquire.return_value.__aexit__.return_value = None
    conn.fetchrow.return_value = None
    conn.fetch.return_value = []
    conn.execute.return_value = None
    pool.conn = conn
    return pool

@pytest.fixture
def task_store():
    return FakeTaskStore()

@pytest.fixture
def session_store():
    return InMemorySessionStore(max_messages=40)

@pytest.fixture
def event_bus():
    return EventBus(InMemoryEventLog(capacity=100))

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def budget():
    return BudgetGovernor(daily_budget_usd=10.0, daily_token_limit=500000)
