from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from coderag_api.core.config import get_settings
from coderag_api.core.responses import UNPROCESSABLE_STATUS, envelope
from coderag_api.schemas.tasks import AnalyzeDiffRequest, TaskCreated, TaskResultRequest, TaskStatus
from coderag_api.services.store import TaskConflictError, TaskNotFoundError, get_task_store

router = APIRouter()


@router.post("/analyze/async", status_code=status.HTTP_202_ACCEPTED)
async def create_diff_analysis_task(
    payload: AnalyzeDiffRequest,
    store=Depends(get_task_store),
) -> dict[str, Any]:
    task = await store.create_task(payload)
    created = TaskCreated(task_id=task.task_id, status=task.status, created_at=task.created_at)
    return envelope(created, code=status.HTTP_202_ACCEPTED, message="Task created")


@router.get("/tasks")
async def list_tasks(
    store=Depends(get_task_store),
    task_status: TaskStatus | None = Query(default=TaskStatus.PENDING, alias="status"),
    limit: int | None = Query(default=None, ge=1, le=500),
) -> dict[str, Any]:
    rows = await store.list_tasks(status=task_status, limit=limit or get_settings().task_list_limit)
    return envelope(rows)


@router.get("/tasks/{task_id}")
async def get_task_status(task_id: str, store=Depends(get_task_store)) -> dict[str, Any]:
    try:
        task = await store.get_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return envelope(task)


@router.post("/tasks/{task_id}/claim")
async def claim_task(task_id: str, store=Depends(get_task_store)) -> dict[str, Any]:
    try:
        task = await store.claim_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TaskConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return envelope(task)


@router.post("/tasks/{task_id}/result")
async def submit_task_result(
    task_id: str,
    payload: TaskResultRequest,
    store=Depends(get_task_store),
) -> dict[str, Any]:
    try:
        task = await store.finish_task(
            task_id,
            status=TaskStatus(payload.status),
            result=payload.result,
            error=payload.error,
        )
    except ValueError as exc:
        raise HTTPException(status_code=UNPROCESSABLE_STATUS, detail=str(exc)) from exc
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TaskConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return envelope(task)
