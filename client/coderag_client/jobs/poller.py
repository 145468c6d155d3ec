"""Submit a server-side job and poll it until it reaches a terminal state.

A poll run makes at most ``max_attempts`` sequential status calls spaced
``interval_seconds`` apart and ends in exactly one outcome: completed,
failed, timed out, or cancelled.  Cancellation is cooperative; a status call
already in flight when ``cancel()`` is invoked is allowed to finish but its
response is discarded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Generator
from typing import Any, Protocol

from opentelemetry import trace

from coderag_client.core.telemetry import (
    ATTR_JOB_ATTEMPT,
    ATTR_JOB_ID,
    ATTR_JOB_STATUS,
    ATTR_POLL_ATTEMPTS,
    ATTR_POLL_MAX_ATTEMPTS,
    ATTR_POLL_OUTCOME,
    POLL_ATTEMPT_SPAN,
    POLL_SPAN,
)
from coderag_client.jobs.errors import JobFailure, PollTimeout, SubmissionError, TransportError
from coderag_client.jobs.models import Job, JobHandle, JobStatus, PollOutcome, PollOutcomeKind
from coderag_client.services.api_client import ApiError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL_SECONDS = 5.0

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]
Callback = Callable[..., Any]


class JobEndpoints(Protocol):
    async def create_job(self, payload: Any) -> JobHandle: ...

    async def get_job(self, job_id: str) -> Job: ...


class CancellationToken:
    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class PollHandle:
    """Returned by :meth:`AsyncJobPoller.poll`.

    Calling the handle (or ``cancel()``) stops further polling. Awaiting it
    yields the final :class:`PollOutcome`.
    """

    def __init__(self, task: asyncio.Task[PollOutcome], token: CancellationToken) -> None:
        self._task = task
        self._token = token

    def cancel(self) -> None:
        self._token.cancel()

    __call__ = cancel

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def done(self) -> bool:
        return self._task.done()

    def __await__(self) -> Generator[Any, None, PollOutcome]:
        return self._task.__await__()


class AsyncJobPoller:
    def __init__(
        self,
        endpoints: JobEndpoints,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        tracer: trace.Tracer | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        self.endpoints = endpoints
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._clock = clock
        self._tracer = tracer or trace.get_tracer(__name__)

    async def submit(self, request: Any) -> JobHandle:
        try:
            handle = await self.endpoints.create_job(request)
        except ApiError as exc:
            logger.warning("job submission failed status=%s message=%s", exc.status_code, exc.message)
            raise SubmissionError(exc.message, status_code=exc.status_code) from exc
        logger.info("job submitted job_id=%s status=%s", handle.job_id, handle.status.value)
        return handle

    async def run(self, request: Any, token: CancellationToken | None = None) -> PollOutcome:
        handle = await self.submit(request)
        return await self.wait(handle.job_id, token)

    async def wait(self, job_id: str, token: CancellationToken | None = None) -> PollOutcome:
        token = token or CancellationToken()
        started_at = self._clock()
        with self._tracer.start_as_current_span(POLL_SPAN) as span:
            span.set_attribute(ATTR_JOB_ID, job_id)
            span.set_attribute(ATTR_POLL_MAX_ATTEMPTS, self.max_attempts)
            outcome = await self._poll_until_terminal(job_id, token)
            outcome.elapsed_seconds = self._clock() - started_at
            span.set_attribute(ATTR_POLL_OUTCOME, outcome.kind.value)
            span.set_attribute(ATTR_POLL_ATTEMPTS, outcome.attempts)
        logger.info(
            "job poll finished job_id=%s outcome=%s attempts=%s elapsed_s=%.1f",
            job_id,
            outcome.kind.value,
            outcome.attempts,
            outcome.elapsed_seconds,
        )
        return outcome

    def poll(
        self,
        job_id: str,
        on_complete: Callback,
        on_failure: Callback,
        on_timeout: Callback,
    ) -> PollHandle:
        """Start polling in the background and report through callbacks.

        ``on_complete(result)``, ``on_failure(error)`` and ``on_timeout()`` are
        mutually exclusive; at most one of them fires, and none fires once the
        returned handle has been cancelled. Must be called from a running
        event loop.
        """
        token = CancellationToken()
        task = asyncio.get_running_loop().create_task(
            self._drive(job_id, token, on_complete, on_failure, on_timeout),
            name=f"job-poll-{job_id}",
        )
        return PollHandle(task, token)

    async def _poll_until_terminal(self, job_id: str, token: CancellationToken) -> PollOutcome:
        attempts = 0
        while True:
            if token.cancelled:
                return PollOutcome(PollOutcomeKind.CANCELLED, job_id, attempts)

            attempts += 1
            with self._tracer.start_as_current_span(POLL_ATTEMPT_SPAN) as span:
                span.set_attribute(ATTR_JOB_ID, job_id)
                span.set_attribute(ATTR_JOB_ATTEMPT, attempts)
                try:
                    job = await self.endpoints.get_job(job_id)
                except ApiError as exc:
                    if token.cancelled:
                        return PollOutcome(PollOutcomeKind.CANCELLED, job_id, attempts)
                    logger.warning(
                        "job status call failed job_id=%s attempt=%s status=%s message=%s",
                        job_id,
                        attempts,
                        exc.status_code,
                        exc.message,
                    )
                    error = TransportError(job_id, exc.message, status_code=exc.status_code)
                    error.__cause__ = exc
                    return PollOutcome(PollOutcomeKind.FAILED, job_id, attempts, error=error)
                span.set_attribute(ATTR_JOB_STATUS, job.status.value)

            if token.cancelled:
                return PollOutcome(PollOutcomeKind.CANCELLED, job_id, attempts, job=job)
            if job.status is JobStatus.COMPLETED:
                return PollOutcome(PollOutcomeKind.COMPLETED, job_id, attempts, job=job)
            if job.status is JobStatus.FAILED:
                error = JobFailure(job_id, job.failure_message)
                return PollOutcome(PollOutcomeKind.FAILED, job_id, attempts, job=job, error=error)
            if attempts >= self.max_attempts:
                error = PollTimeout(job_id, attempts)
                return PollOutcome(PollOutcomeKind.TIMED_OUT, job_id, attempts, job=job, error=error)

            logger.debug("job still running job_id=%s status=%s attempt=%s", job_id, job.status.value, attempts)
            await self._sleep(self.interval_seconds)

    async def _drive(
        self,
        job_id: str,
        token: CancellationToken,
        on_complete: Callback,
        on_failure: Callback,
        on_timeout: Callback,
    ) -> PollOutcome:
        try:
            outcome = await self.wait(job_id, token)
        except Exception as exc:
            logger.exception("job poll crashed job_id=%s", job_id)
            outcome = PollOutcome(PollOutcomeKind.FAILED, job_id, 0, error=exc)

        if token.cancelled or outcome.kind is PollOutcomeKind.CANCELLED:
            return outcome
        if outcome.kind is PollOutcomeKind.COMPLETED:
            await _invoke(on_complete, outcome.result)
        elif outcome.kind is PollOutcomeKind.FAILED:
            await _invoke(on_failure, outcome.error)
        else:
            await _invoke(on_timeout)
        return outcome


async def _invoke(callback: Callback, *args: Any) -> None:
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("job poll callback %r raised", callback)
