from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_FAILURE_MESSAGE = "job failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


class JobHandle(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    job_id: str = Field(validation_alias=AliasChoices("jobId", "taskId", "id", "job_id"))
    status: JobStatus = JobStatus.PENDING
    created_at: datetime | None = Field(default=None, validation_alias=AliasChoices("createdAt", "created_at"))


class Job(BaseModel):
    """Status snapshot of one server-side job as returned by the status endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("jobId", "taskId", "id"))
    status: JobStatus
    result: Any = None
    error: str | None = None
    created_at: datetime | None = Field(default=None, validation_alias=AliasChoices("createdAt", "created_at"))
    completed_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("completedAt", "completed_at"),
    )

    @property
    def failure_message(self) -> str:
        return self.error or DEFAULT_FAILURE_MESSAGE


class PollOutcomeKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PollOutcome:
    kind: PollOutcomeKind
    job_id: str
    attempts: int
    job: Job | None = None
    error: Exception | None = None
    elapsed_seconds: float = 0.0

    @property
    def result(self) -> Any:
        if self.kind is PollOutcomeKind.COMPLETED and self.job is not None:
            return self.job.result
        return None
