"""Document-store style access to series and tasks.

These functions are the only place that touches the Series/Task tables.
Every lookup is scoped by `user_id`. They flush but never commit; the
caller owns the unit of work.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from .models import Series, Tag, Task


_TASK_COLUMNS = frozenset(c.key for c in Task.__table__.columns) - {"id", "created_at", "updated_at"}
_SERIES_COLUMNS = frozenset(c.key for c in Series.__table__.columns) - {"id", "created_at", "updated_at"}


def _check_columns(values: dict[str, Any], allowed: frozenset[str], entity: str) -> None:
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Unknown {entity} field(s): {', '.join(sorted(unknown))}")


# ---------------------- Tasks ----------------------


def _task_query(db: Session, *, user_id: int):
    return db.query(Task).options(selectinload(Task.tags)).filter(Task.user_id == int(user_id))


def insert_task(db: Session, *, values: dict[str, Any], tags: Optional[Sequence[Tag]] = None) -> Task:
    _check_columns(values, _TASK_COLUMNS, "task")
    task = Task(**values)
    if tags:
        task.tags = list(tags)
    db.add(task)
    db.flush()
    return task


def insert_tasks(
    db: Session,
    *,
    rows: Iterable[dict[str, Any]],
    tags: Optional[Sequence[Tag]] = None,
) -> list[Task]:
    tasks: list[Task] = []
    for values in rows:
        _check_columns(values, _TASK_COLUMNS, "task")
        task = Task(**values)
        if tags:
            task.tags = list(tags)
        tasks.append(task)
    db.add_all(tasks)
    db.flush()
    return tasks


def find_task(db: Session, *, user_id: int, task_id: int) -> Optional[Task]:
    return _task_query(db, user_id=user_id).filter(Task.id == int(task_id)).first()


def find_tasks(
    db: Session,
    *,
    user_id: int,
    series_id: Optional[int] = None,
    start_from: Optional[int] = None,
    criteria: Sequence[Any] = (),
    order_by: Sequence[Any] = (),
) -> list[Task]:
    q = _task_query(db, user_id=user_id)
    if series_id is not None:
        q = q.filter(Task.series_id == int(series_id))
    if start_from is not None:
        q = q.filter(Task.start_time >= int(start_from))
    for c in criteria:
        q = q.filter(c)
    q = q.order_by(*(order_by or (Task.start_time.asc(), Task.id.asc())))
    return q.all()


def update_task_by_id(
    db: Session,
    *,
    user_id: int,
    task_id: int,
    values: dict[str, Any],
    tags: Optional[Sequence[Tag]] = None,
) -> Optional[Task]:
    """Apply `values` to one task and return the post-update row."""
    _check_columns(values, _TASK_COLUMNS, "task")
    task = find_task(db, user_id=user_id, task_id=task_id)
    if task is None:
        return None
    for key, value in values.items():
        setattr(task, key, value)
    if tags is not None:
        task.tags = list(tags)
    db.flush()
    return task


def update_tasks(
    db: Session,
    *,
    user_id: int,
    series_id: int,
    values: dict[str, Any],
    tags: Optional[Sequence[Tag]] = None,
    start_from: Optional[int] = None,
) -> int:
    """Overwrite `values` on every task of a series (optionally from `start_from` on)."""
    _check_columns(values, _TASK_COLUMNS, "task")
    q = db.query(Task).filter(Task.user_id == int(user_id)).filter(Task.series_id == int(series_id))
    if start_from is not None:
        q = q.filter(Task.start_time >= int(start_from))

    count = q.count()
    if values:
        q.update(values, synchronize_session="fetch")
    if tags is not None:
        # Association rows cannot be bulk-updated through the query API.
        for task in q.options(selectinload(Task.tags)).all():
            task.tags = list(tags)
    db.flush()
    return int(count)


def delete_task_by_id(db: Session, *, user_id: int, task_id: int) -> bool:
    task = find_task(db, user_id=user_id, task_id=task_id)
    if task is None:
        return False
    db.delete(task)
    db.flush()
    return True


def delete_tasks(
    db: Session,
    *,
    user_id: int,
    series_id: int,
    start_from: Optional[int] = None,
) -> int:
    q = db.query(Task).filter(Task.user_id == int(user_id)).filter(Task.series_id == int(series_id))
    if start_from is not None:
        q = q.filter(Task.start_time >= int(start_from))
    tasks = q.all()
    for task in tasks:
        db.delete(task)
    db.flush()
    return len(tasks)


def occurrence_bounds(db: Session, *, user_id: int, series_id: int) -> tuple[Optional[int], Optional[int]]:
    """min/max start_time over the current members of a series."""
    row = (
        db.query(func.min(Task.start_time), func.max(Task.start_time))
        .filter(Task.user_id == int(user_id))
        .filter(Task.series_id == int(series_id))
        .one()
    )
    first, last = row
    return (int(first) if first is not None else None, int(last) if last is not None else None)


# ---------------------- Series ----------------------


def _series_query(db: Session, *, user_id: Optional[int]):
    q = db.query(Series).options(selectinload(Series.tags))
    if user_id is not None:
        q = q.filter(Series.user_id == int(user_id))
    return q


def insert_series(db: Session, *, values: dict[str, Any], tags: Optional[Sequence[Tag]] = None) -> Series:
    _check_columns(values, _SERIES_COLUMNS, "series")
    series = Series(**values)
    if tags:
        series.tags = list(tags)
    db.add(series)
    db.flush()
    return series


def find_one_series(db: Session, *, user_id: int, series_id: int) -> Optional[Series]:
    return _series_query(db, user_id=user_id).filter(Series.id == int(series_id)).first()


def find_series(
    db: Session,
    *,
    user_id: Optional[int],
    criteria: Sequence[Any] = (),
) -> list[Series]:
    """List series; `user_id=None` spans every user and is meant for maintenance jobs."""
    q = _series_query(db, user_id=user_id)
    for c in criteria:
        q = q.filter(c)
    return q.order_by(Series.id.asc()).all()


def update_series_by_id(
    db: Session,
    *,
    user_id: int,
    series_id: int,
    values: dict[str, Any],
    tags: Optional[Sequence[Tag]] = None,
) -> Optional[Series]:
    _check_columns(values, _SERIES_COLUMNS, "series")
    series = find_one_series(db, user_id=user_id, series_id=series_id)
    if series is None:
        return None
    for key, value in values.items():
        setattr(series, key, value)
    if tags is not None:
        series.tags = list(tags)
    db.flush()
    return series


def delete_series_by_id(db: Session, *, user_id: int, series_id: int) -> bool:
    series = find_one_series(db, user_id=user_id, series_id=series_id)
    if series is None:
        return False
    db.delete(series)
    db.flush()
    return True
