from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user_api
from ..crud import delete_series, get_series, list_series, list_series_tasks, update_series
from ..db import get_db
from ..schemas import MessageOut, SeriesOut, SeriesUpdate, TaskOut
from .errors import http_errors


router = APIRouter()


@router.get("/", response_model=list[SeriesOut])
def api_list_series(
    q: str | None = Query(default=None, description="JSON filter over series fields"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return list_series(db, current_user=current_user, q=q)


@router.get("/{series_id}", response_model=SeriesOut)
def api_get_series(
    series_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return get_series(db, current_user=current_user, series_id=series_id)


@router.get("/{series_id}/tasks", response_model=list[TaskOut])
def api_list_series_tasks(
    series_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return list_series_tasks(db, current_user=current_user, series_id=series_id)


@router.put("/{series_id}", response_model=SeriesOut)
def api_update_series(
    series_id: int,
    payload: SeriesUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return update_series(db, current_user=current_user, series_id=series_id, payload=payload)


@router.delete("/{series_id}", response_model=MessageOut)
def api_delete_series(
    series_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return delete_series(db, current_user=current_user, series_id=series_id)
