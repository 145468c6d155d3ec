from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {TaskStatus.COMPLETED, TaskStatus.FAILED}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeDiffRequest(CamelModel):
    requirement: str = Field(min_length=10)
    role: str | None = None
    include_code_matches: bool = True
    include_prd_fragments: bool = Field(default=True, alias="includePRDFragments")
    include_summary: bool = True
    include_todos: bool = True
    code_match_top_k: int = Field(default=5, ge=1, le=20)
    prd_top_k: int = Field(default=5, ge=1, le=20)


class TaskCreated(CamelModel):
    task_id: str
    status: TaskStatus
    created_at: datetime


class TaskOut(CamelModel):
    task_id: str
    status: TaskStatus
    requirement: str
    options: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class TaskResultRequest(CamelModel):
    status: Literal["completed", "failed"]
    result: dict[str, Any] | None = None
    error: str | None = None
