import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from coderag_api.schemas.tasks import AnalyzeDiffRequest, TaskStatus
from coderag_api.services.store import InMemoryTaskStore, TaskConflictError, TaskNotFoundError, new_task_id

REQUEST = AnalyzeDiffRequest(requirement="Support phone and email login")


def test_new_task_id_format() -> None:
    prefix, millis, suffix = new_task_id().split("-")
    assert prefix == "diff"
    assert millis.isdigit()
    assert len(suffix) == 6


def test_cleanup_drops_only_old_terminal_tasks() -> None:
    store = InMemoryTaskStore(retention_hours=24)
    now = datetime.now(timezone.utc)

    async def run() -> int:
        old = await store.create_task(REQUEST)
        recent = await store.create_task(REQUEST)
        await store.create_task(REQUEST)

        await store.claim_task(old.task_id)
        await store.finish_task(old.task_id, status=TaskStatus.COMPLETED, result={}, now=now - timedelta(hours=30))
        await store.claim_task(recent.task_id)
        await store.finish_task(recent.task_id, status=TaskStatus.FAILED, error="boom", now=now - timedelta(hours=1))

        return await store.cleanup_completed(now=now)

    dropped = asyncio.run(run())

    assert dropped == 1
    assert sorted(task.status.value for task in store.tasks.values()) == ["failed", "pending"]


def test_create_task_prunes_expired_tasks() -> None:
    store = InMemoryTaskStore(retention_hours=1)
    now = datetime.now(timezone.utc)

    async def run() -> None:
        old = await store.create_task(REQUEST, now=now - timedelta(hours=3))
        await store.claim_task(old.task_id)
        await store.finish_task(old.task_id, status=TaskStatus.COMPLETED, result={"ok": True}, now=now - timedelta(hours=2))
        await store.create_task(REQUEST, now=now)

    asyncio.run(run())

    assert [task.status for task in store.tasks.values()] == [TaskStatus.PENDING]


def test_finish_rejects_non_terminal_status() -> None:
    store = InMemoryTaskStore()

    async def run() -> None:
        task = await store.create_task(REQUEST)
        await store.claim_task(task.task_id)
        await store.finish_task(task.task_id, status=TaskStatus.PENDING)

    with pytest.raises(ValueError):
        asyncio.run(run())


def test_missing_and_conflicting_transitions() -> None:
    store = InMemoryTaskStore()

    async def claim_twice() -> None:
        task = await store.create_task(REQUEST)
        await store.claim_task(task.task_id)
        await store.claim_task(task.task_id)

    with pytest.raises(TaskConflictError):
        asyncio.run(claim_twice())

    with pytest.raises(TaskNotFoundError):
        asyncio.run(store.get_task("diff-missing"))
