from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from coderag_client.jobs.models import Job, JobHandle
from coderag_client.schemas.diff_analysis import AnalyzeDiffRequest, DiffAnalysisResult
from coderag_client.services.api_client import ApiClient, ApiError

ANALYZE_PATH = "/api/v1/diff/analyze"
CREATE_TASK_PATH = "/api/v1/diff/analyze/async"
TASK_STATUS_PATH = "/api/v1/diff/tasks/{job_id}"


class DiffAnalysisService:
    """Diff-analysis endpoints of the backend.

    ``create_job`` and ``get_job`` are the submission/status pair used by
    :class:`coderag_client.jobs.poller.AsyncJobPoller`.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        analyze_path: str = ANALYZE_PATH,
        create_task_path: str = CREATE_TASK_PATH,
        task_status_path: str = TASK_STATUS_PATH,
    ) -> None:
        self.client = client
        self.analyze_path = analyze_path
        self.create_task_path = create_task_path
        self.task_status_path = task_status_path

    async def analyze(self, request: AnalyzeDiffRequest) -> DiffAnalysisResult:
        payload = await self.client.post(self.analyze_path, json=request.to_payload())
        return _parse(DiffAnalysisResult, payload)

    async def create_job(self, payload: AnalyzeDiffRequest | dict[str, Any]) -> JobHandle:
        if isinstance(payload, AnalyzeDiffRequest):
            payload = payload.to_payload()
        body = await self.client.post(self.create_task_path, json=payload)
        return _parse(JobHandle, body)

    async def get_job(self, job_id: str) -> Job:
        body = await self.client.get(self.task_status_path.format(job_id=job_id))
        return _parse(Job, body)


def parse_analysis_result(payload: Any) -> DiffAnalysisResult:
    return _parse(DiffAnalysisResult, payload)


def _parse(model: Any, payload: Any) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ApiError(200, f"unexpected {model.__name__} payload: {exc.error_count()} validation errors") from exc
