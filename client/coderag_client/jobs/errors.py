from __future__ import annotations


class JobError(Exception):
    """Base class for everything that can end a submit/poll run."""


class SubmissionError(JobError):
    """The job could not be created; no job exists and polling never started."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(JobError):
    """A status call failed after the job was created.

    The job itself may still be running server-side.
    """

    def __init__(self, job_id: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.message = message
        self.status_code = status_code


class JobFailure(JobError):
    """The server reported ``status: failed`` for the job."""

    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.message = message


class PollTimeout(JobError):
    """The attempt budget ran out while the job was still pending or processing."""

    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(f"job {job_id} still running after {attempts} poll attempts")
        self.job_id = job_id
        self.attempts = attempts
