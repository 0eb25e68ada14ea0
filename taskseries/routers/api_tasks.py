from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user_api
from ..crud import SeriesResult, create_task, delete_task, get_task, list_tasks, update_task
from ..db import get_db
from ..schemas import MessageOut, SeriesOut, SeriesTasksOut, TaskCreate, TaskOut, TaskUpdate, TaskWriteResponse
from .errors import http_errors


router = APIRouter()


def _write_response(result) -> TaskWriteResponse:
    if isinstance(result, SeriesResult):
        return SeriesTasksOut(
            series=SeriesOut.model_validate(result.series),
            tasks=[TaskOut.model_validate(t) for t in result.tasks],
        )
    return TaskOut.model_validate(result)


@router.get("/", response_model=list[TaskOut])
def api_list_tasks(
    q: str | None = Query(default=None, description='JSON filter, e.g. {"start_time": {"$gte": 0}}'),
    sort: str = Query(default="start_time", description="start_time, due_time, priority, title. Prefix '-' for desc."),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return list_tasks(db, current_user=current_user, q=q, sort=sort)


@router.post("/", response_model=TaskWriteResponse)
def api_create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        result = create_task(db, current_user=current_user, payload=payload)
        return _write_response(result)


@router.get("/{task_id}", response_model=TaskOut)
def api_get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return get_task(db, current_user=current_user, task_id=task_id)


@router.put("/{task_id}", response_model=TaskWriteResponse)
def api_update_task(
    task_id: int,
    payload: TaskUpdate,
    mode: str = Query(default="single", description="single, all or following"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        result = update_task(db, current_user=current_user, task_id=task_id, payload=payload, mode=mode)
        return _write_response(result)


@router.delete("/{task_id}", response_model=MessageOut)
def api_delete_task(
    task_id: int,
    mode: str = Query(default="single", description="single, all or following"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return delete_task(db, current_user=current_user, task_id=task_id, mode=mode)
