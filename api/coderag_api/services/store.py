import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any
from uuid import uuid4

from coderag_api.core.config import get_settings
from coderag_api.schemas.tasks import TERMINAL_STATUSES, AnalyzeDiffRequest, TaskOut, TaskStatus

logger = logging.getLogger(__name__)


class TaskStoreError(Exception):
    """Base error for task store operations."""


class TaskNotFoundError(TaskStoreError):
    pass


class TaskConflictError(TaskStoreError):
    pass


class InMemoryTaskStore:
    """Process-local diff-analysis task registry.

    Status only moves forward: pending -> processing -> completed | failed.
    Terminal tasks are never modified, only dropped by ``cleanup_completed``.
    """

    def __init__(self, *, retention_hours: int = 24) -> None:
        self.retention_hours = retention_hours
        self.tasks: dict[str, TaskOut] = {}
        self._lock = asyncio.Lock()

    async def create_task(self, request: AnalyzeDiffRequest, *, now: datetime | None = None) -> TaskOut:
        created_at = now or datetime.now(timezone.utc)
        options = request.model_dump(by_alias=True, exclude={"requirement"})
        task = TaskOut(
            task_id=new_task_id(),
            status=TaskStatus.PENDING,
            requirement=request.requirement,
            options=options,
            created_at=created_at,
        )
        async with self._lock:
            self._cleanup_locked(created_at - timedelta(hours=self.retention_hours))
            self.tasks[task.task_id] = task
        logger.info("task created task_id=%s", task.task_id)
        return task

    async def get_task(self, task_id: str) -> TaskOut:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"task {task_id} not found")
        return task

    async def list_tasks(self, *, status: TaskStatus | None = None, limit: int = 50) -> list[TaskOut]:
        rows = [task for task in self.tasks.values() if status is None or task.status is status]
        rows.sort(key=lambda task: task.created_at)
        return rows[:limit]

    async def claim_task(self, task_id: str) -> TaskOut:
        async with self._lock:
            task = self.tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(f"task {task_id} not found")
            if task.status is not TaskStatus.PENDING:
                raise TaskConflictError(f"task {task_id} is {task.status.value}, not pending")
            task.status = TaskStatus.PROCESSING
        logger.info("task claimed task_id=%s", task_id)
        return task

    async def finish_task(
        self,
        task_id: str,
        *,
        status: TaskStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
        now: datetime | None = None,
    ) -> TaskOut:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status.value} is not a terminal status")
        if status is TaskStatus.COMPLETED and (result is None or error is not None):
            raise ValueError("completed tasks need a result and no error")
        if status is TaskStatus.FAILED and (not error or result is not None):
            raise ValueError("failed tasks need an error and no result")

        async with self._lock:
            task = self.tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(f"task {task_id} not found")
            if task.status is not TaskStatus.PROCESSING:
                raise TaskConflictError(f"task {task_id} is {task.status.value}, not processing")
            task.status = status
            task.result = result
            task.error = error
            task.completed_at = now or datetime.now(timezone.utc)
        logger.info("task finished task_id=%s status=%s", task_id, status.value)
        return task

    async def cleanup_completed(self, *, older_than_hours: int | None = None, now: datetime | None = None) -> int:
        hours = self.retention_hours if older_than_hours is None else older_than_hours
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        async with self._lock:
            return self._cleanup_locked(cutoff)

    def _cleanup_locked(self, cutoff: datetime) -> int:
        expired = [
            task_id
            for task_id, task in self.tasks.items()
            if task.status in TERMINAL_STATUSES and task.completed_at is not None and task.completed_at < cutoff
        ]
        for task_id in expired:
            del self.tasks[task_id]
        if expired:
            logger.info("dropped expired tasks count=%s", len(expired))
        return len(expired)


def new_task_id() -> str:
    return f"diff-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


@lru_cache
def get_task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore(retention_hours=get_settings().task_retention_hours)
