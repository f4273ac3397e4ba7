# infrastructure/storage/task_store.py
import json
from datetime import datetime
from typing import Dict, Any, Optional, List
import asyncpg

from domain.exceptions import InvalidTransitionError, TaskNotFoundError
from domain.models.task_state import Task, TaskStatus, ACTIVE_STATUSES, validate_transition
from infrastructure.storage.schema import create_schema
from shared.logging import logger

class PostgresTaskStore:
    """Task rows in Postgres; status changes go through ``transition`` only"""

    def __init__(self, database_url: Optional[str] = None,
                 connection_pool: Optional[asyncpg.Pool] = None):
        self.database_url = database_url
        self.connection_pool = connection_pool

    async def initialize(self):
        """Initialize database connection pool and create tables"""
        if self.connection_pool is None:
            self.connection_pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        async with self.connection_pool.acquire() as conn:
            await create_schema(conn)
        logger.info("Task store initialized")

    @staticmethod
    def _row_to_task(row) -> Task:
        return Task(
            task_id=row["task_id"],
            title=row["title"],
            task_type=row["task_type"],
            status=TaskStatus(row["status"]),
            description=row["description"] or "",
            assignee=row["assignee"],
            input_data=json.loads(row["input_data"]) if row["input_data"] else {},
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
            priority=row["priority"],
            estimated_cost=float(row["estimated_cost"] or 0),
            can_create_subtasks=row["can_create_subtasks"],
            source=row["source"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"]
        )

    async def create_task(self, task: Task) -> Task:
        """Insert a new task row and return it as stored"""
        async with self.connection_pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO tasks
                (task_id, title, description, task_type, assignee, status, input_data,
                 priority, estimated_cost, can_create_subtasks, source)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING *
            """, task.task_id, task.title, task.description, task.task_type,
                task.assignee, task.status.value, json.dumps(task.input_data),
                task.priority, task.estimated_cost, task.can_create_subtasks, task.source)

        logger.info("Task created", task_id=task.task_id, title=task.title,
                   status=task.status.value, source=task.source)
        return self._row_to_task(row)

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with self.connection_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM tasks WHERE task_id = $1", task_id)
        return self._row_to_task(row) if row else None

    async def list_tasks(self, status: Optional[TaskStatus] = None,
                         limit: int = 100) -> List[Task]:
        """Get list of tasks with optional status filter, newest first"""
        async with self.connection_pool.acquire() as conn:
            if status:
                rows = await conn.fetch("""
                    SELECT * FROM tasks
                    WHERE status = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                """, status.value, limit)
            else:
                rows = await conn.fetch("""
                    SELECT * FROM tasks
                    ORDER BY created_at DESC
                    LIMIT $1
                """, limit)
        return [self._row_to_task(row) for row in rows]

    async def fetch_approved(self, limit: int = 5) -> List[Task]:
        """Approved tasks in execution order: priority ascending, then oldest first"""
        async with self.connection_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM tasks
                WHERE status = $1
                ORDER BY priority ASC, created_at ASC
                LIMIT $2
            """, TaskStatus.APPROVED.value, limit)
        return [self._row_to_task(row) for row in rows]

    async def find_active_by_title(self, title: str) -> Optional[Task]:
        """A non-terminal task with exactly this title, if one exists"""
        async with self.connection_pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM tasks
                WHERE title = $1 AND status = ANY($2::text[])
                ORDER BY created_at DESC
                LIMIT 1
            """, title, [status.value for status in ACTIVE_STATUSES])
        return self._row_to_task(row) if row else None

    async def transition(self, task_id: str, target: TaskStatus,
                         result: Optional[Dict[str, Any]] = None,
                         error: Optional[str] = None) -> Task:
        """Move a task along its lifecycle.

        The move is validated against the domain model and applied with a
        compare-and-set on the current status, so a concurrent writer that
        got there first turns this call into an ``InvalidTransitionError``.
        """
        current = await self.get_task(task_id)
        if current is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        validate_transition(current.status, target)

        now = datetime.utcnow()
        started_at = now if target == TaskStatus.EXECUTING else current.started_at
        completed_at = now if target.is_terminal else None

        async with self.connection_pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE tasks
                SET status = $2,
                    result = COALESCE($3::jsonb, result),
                    error = COALESCE($4, error),
                    started_at = $5,
                    completed_at = $6,
                    updated_at = $7
                WHERE task_id = $1 AND status = $8
                RETURNING *
            """, task_id, target.value,
                json.dumps(result) if result is not None else None,
                error, started_at, completed_at, now, current.status.value)

        if row is None:
            raise InvalidTransitionError(
                f"Task {task_id} changed status concurrently; expected '{current.status.value}'"
            )

        logger.info("Task status updated", task_id=task_id,
                   from_status=current.status.value, status=target.value, error=error)
        return self._row_to_task(row)

    async def close(self):
        """Close database connection pool"""
        if self.connection_pool:
            await self.connection_pool.close()
            logger.info("Database connection pool closed")
