from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from coderag_api.main import app
from coderag_api.services.store import InMemoryTaskStore, get_task_store
from coderag_client.jobs.errors import JobFailure, TransportError
from coderag_client.jobs.models import PollOutcomeKind
from coderag_client.jobs.poller import AsyncJobPoller
from coderag_client.schemas.diff_analysis import AnalyzeDiffRequest
from coderag_client.services.api_client import ApiClient
from coderag_client.services.diff_analysis import DiffAnalysisService

REQUEST = AnalyzeDiffRequest(requirement="Support phone and email login with remember-me")


@pytest.fixture
def store() -> InMemoryTaskStore:
    store = InMemoryTaskStore()
    app.dependency_overrides[get_task_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def api_client() -> ApiClient:
    return ApiClient("http://task-api.test", transport=httpx.ASGITransport(app=app))


class ProcessorSleep:
    """Plays an out-of-band processor between poll attempts."""

    def __init__(self, api_client: ApiClient, outcome: dict[str, Any]) -> None:
        self.api_client = api_client
        self.outcome = outcome
        self.sleeps = 0
        self.task_id: str | None = None

    async def __call__(self, seconds: float) -> None:
        self.sleeps += 1
        if self.sleeps == 1:
            await self.api_client.post(f"/api/v1/diff/tasks/{self.task_id}/claim")
        elif self.sleeps == 2:
            await self.api_client.post(f"/api/v1/diff/tasks/{self.task_id}/result", json=self.outcome)


def _poller(api_client: ApiClient, sleep: Any, max_attempts: int = 10) -> AsyncJobPoller:
    return AsyncJobPoller(DiffAnalysisService(api_client), max_attempts=max_attempts, interval_seconds=5.0, sleep=sleep)


def test_poller_observes_completed_task(store: InMemoryTaskStore, api_client: ApiClient) -> None:
    processor = ProcessorSleep(api_client, {"status": "completed", "result": {"summary": "two change points"}})
    poller = _poller(api_client, processor)
    seen: list[Any] = []

    async def run():
        handle = await poller.submit(REQUEST)
        processor.task_id = handle.job_id
        return await poller.poll(handle.job_id, seen.append, seen.append, lambda: seen.append("timeout"))

    outcome = asyncio.run(run())

    assert outcome.kind is PollOutcomeKind.COMPLETED
    assert outcome.attempts == 3
    assert seen == [{"summary": "two change points"}]
    assert outcome.job.completed_at is not None


def test_poller_observes_failed_task(store: InMemoryTaskStore, api_client: ApiClient) -> None:
    processor = ProcessorSleep(api_client, {"status": "failed", "error": "bad input"})
    poller = _poller(api_client, processor)

    async def run():
        handle = await poller.submit(REQUEST)
        processor.task_id = handle.job_id
        return await poller.wait(handle.job_id)

    outcome = asyncio.run(run())

    assert outcome.kind is PollOutcomeKind.FAILED
    assert isinstance(outcome.error, JobFailure)
    assert outcome.error.message == "bad input"


def test_poller_times_out_when_nobody_processes(store: InMemoryTaskStore, api_client: ApiClient) -> None:
    async def idle(seconds: float) -> None:
        return None

    poller = _poller(api_client, idle, max_attempts=4)

    async def run():
        return await poller.run(REQUEST)

    outcome = asyncio.run(run())

    assert outcome.kind is PollOutcomeKind.TIMED_OUT
    assert outcome.attempts == 4
    assert store.tasks[outcome.job_id].status.value == "pending"


def test_unknown_task_is_a_transport_failure(store: InMemoryTaskStore, api_client: ApiClient) -> None:
    async def idle(seconds: float) -> None:
        return None

    outcome = asyncio.run(_poller(api_client, idle).wait("diff-0-missing"))

    assert outcome.kind is PollOutcomeKind.FAILED
    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code == 404
    assert outcome.attempts == 1
