from __future__ import annotations

import enum
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from . import store
from .config import get_settings
from .models import EditMode, Goal, Series, Tag, Task, User
from .recurrence import RecurrenceError, coerce_rule, generate_occurrences, rules_equal
from .schemas import RecurrenceRule
from .task_template import DEFAULT_SERIES_COLOR, TaskTemplate, build_task_template
from .utils.time_utils import MAX_EPOCH_MS, MIN_EPOCH_MS, combine_local_date_and_time, now_ms


logger = logging.getLogger("taskseries.crud")


# Never touched by "all"/"following" bulk edits.
SCHEDULING_FIELDS = frozenset({"recurrence", "start_time", "end_time", "due_time", "complete_time"})

TASK_PAYLOAD_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "task_type",
        "start_time",
        "end_time",
        "due_time",
        "complete_time",
        "recurrence",
        "goal_id",
        "tag_ids",
        "note",
        "is_backlog",
        "skipped",
        "plan_period",
        "color",
    }
)

TIMESTAMP_FIELDS = frozenset({"start_time", "end_time", "due_time", "complete_time"})

_NON_NULLABLE_TASK_FIELDS = frozenset({"title", "status", "priority", "task_type", "is_backlog", "skipped"})

# Series fields patched by an unchanged "all" edit.
SERIES_DESCRIPTIVE_FIELDS = ("title", "description", "goal_id", "priority", "color")

SERIES_MUTABLE_FIELDS = frozenset({"title", "description", "goal_id", "tag_ids", "color", "active", "priority"})


class NotFoundError(LookupError):
    """Raised when an entity does not exist or is not owned by the caller."""

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


@dataclass
class SeriesResult:
    series: Series
    tasks: list[Task]


Payload = Union[BaseModel, Mapping[str, Any]]


@contextmanager
def _unit_of_work(db: Session):
    """Commit once when the block succeeds; roll everything back otherwise."""
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _max_occurrences() -> int:
    return int(get_settings().recurrence.max_occurrences)


def _parse_mode(mode: Union[str, EditMode, None]) -> EditMode:
    if mode is None or mode == "":
        return EditMode.single
    try:
        return EditMode(mode)
    except ValueError as e:
        raise ValueError(f"Invalid mode: '{mode}'. Expected one of: single, all, following") from e


def _normalize_payload(payload: Optional[Payload], *, allowed: frozenset[str] = TASK_PAYLOAD_FIELDS) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        raw = payload.model_dump(exclude_unset=True)
    else:
        raw = dict(payload)

    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    data: dict[str, Any] = {}
    for key, value in raw.items():
        if value is None and key in _NON_NULLABLE_TASK_FIELDS:
            continue
        if isinstance(value, enum.Enum):
            value = value.value
        if key == "recurrence" and value is not None:
            value = coerce_rule(value)
        if key in TIMESTAMP_FIELDS and value is not None:
            value = int(value)
            if not MIN_EPOCH_MS <= value <= MAX_EPOCH_MS:
                raise ValueError(f"{key} is outside the supported date range")
        if key == "tag_ids":
            value = [int(t) for t in (value or [])]
        data[key] = value
    return data


# ---------------------- Users ----------------------


def get_user_by_auth_uid(db: Session, auth_uid: str) -> Optional[User]:
    return db.query(User).filter(User.auth_uid == str(auth_uid)).first()


def get_or_create_user(
    db: Session,
    *,
    auth_uid: str,
    name: str | None = None,
    email: str | None = None,
) -> User:
    """Return the local user for an identity-provider subject, creating it on first sight."""
    uid = (auth_uid or "").strip()
    if not uid:
        raise ValueError("auth_uid is required")

    user = get_user_by_auth_uid(db, uid)
    if user is None:
        user = User(auth_uid=uid, name=name, email=(email or "").strip().lower() or None)
        db.add(user)
        logger.info("Created user for subject %s", uid)
    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user


# ---------------------- Goals & tags ----------------------


def _resolve_goal_id(db: Session, *, user_id: int, goal_id: Optional[int]) -> Optional[int]:
    if goal_id is None:
        return None
    goal = db.query(Goal).filter(Goal.id == int(goal_id)).filter(Goal.user_id == int(user_id)).first()
    if goal is None:
        raise ValueError(f"Goal not found: {goal_id}")
    return int(goal.id)


def _resolve_tags(db: Session, *, user_id: int, tag_ids: Iterable[int]) -> list[Tag]:
    ids = [int(t) for t in tag_ids]
    if not ids:
        return []
    rows = db.query(Tag).filter(Tag.user_id == int(user_id)).filter(Tag.id.in_(ids)).all()
    found = {int(t.id) for t in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValueError(f"Tag not found: {', '.join(str(i) for i in missing)}")
    by_id = {int(t.id): t for t in rows}
    return [by_id[i] for i in dict.fromkeys(ids)]


def create_goal(db: Session, *, current_user: User, payload: Payload) -> Goal:
    data = _normalize_payload(payload, allowed=frozenset({"title", "description", "status", "color", "target_date"}))
    if not data.get("title"):
        raise ValueError("title is required")
    goal = Goal(user_id=current_user.id, **data)
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal


def list_goals(db: Session, *, current_user: User) -> list[Goal]:
    return db.query(Goal).filter(Goal.user_id == current_user.id).order_by(Goal.id.asc()).all()


def get_goal(db: Session, *, current_user: User, goal_id: int) -> Goal:
    goal = db.query(Goal).filter(Goal.id == int(goal_id)).filter(Goal.user_id == current_user.id).first()
    if goal is None:
        raise NotFoundError("Goal", goal_id)
    return goal


def update_goal(db: Session, *, current_user: User, goal_id: int, payload: Payload) -> Goal:
    goal = get_goal(db, current_user=current_user, goal_id=goal_id)
    data = _normalize_payload(payload, allowed=frozenset({"title", "description", "status", "color", "target_date"}))
    for key, value in data.items():
        if value is None and key in {"title", "status", "color"}:
            continue
        setattr(goal, key, value)
    db.commit()
    db.refresh(goal)
    return goal


def delete_goal(db: Session, *, current_user: User, goal_id: int) -> None:
    goal = get_goal(db, current_user=current_user, goal_id=goal_id)
    db.delete(goal)
    db.commit()


def create_tag(db: Session, *, current_user: User, payload: Payload) -> Tag:
    data = _normalize_payload(payload, allowed=frozenset({"title", "description", "color"}))
    if not data.get("title"):
        raise ValueError("title is required")
    tag = Tag(user_id=current_user.id, **data)
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


def list_tags(db: Session, *, current_user: User) -> list[Tag]:
    return db.query(Tag).filter(Tag.user_id == current_user.id).order_by(Tag.title.asc()).all()


def get_tag(db: Session, *, current_user: User, tag_id: int) -> Tag:
    tag = db.query(Tag).filter(Tag.id == int(tag_id)).filter(Tag.user_id == current_user.id).first()
    if tag is None:
        raise NotFoundError("Tag", tag_id)
    return tag


def update_tag(db: Session, *, current_user: User, tag_id: int, payload: Payload) -> Tag:
    tag = get_tag(db, current_user=current_user, tag_id=tag_id)
    data = _normalize_payload(payload, allowed=frozenset({"title", "description", "color"}))
    for key, value in data.items():
        if value is None and key in {"title", "color"}:
            continue
        setattr(tag, key, value)
    db.commit()
    db.refresh(tag)
    return tag


def delete_tag(db: Session, *, current_user: User, tag_id: int) -> None:
    tag = get_tag(db, current_user=current_user, tag_id=tag_id)
    db.delete(tag)
    db.commit()


# ---------------------- Queries ----------------------


_TASK_QUERY_COLUMNS = {
    "id": Task.id,
    "title": Task.title,
    "status": Task.status,
    "priority": Task.priority,
    "task_type": Task.task_type,
    "start_time": Task.start_time,
    "end_time": Task.end_time,
    "due_time": Task.due_time,
    "complete_time": Task.complete_time,
    "series_id": Task.series_id,
    "is_recurring": Task.is_recurring,
    "goal_id": Task.goal_id,
    "is_backlog": Task.is_backlog,
    "skipped": Task.skipped,
    "plan_period": Task.plan_period,
}

_SERIES_QUERY_COLUMNS = {
    "id": Series.id,
    "title": Series.title,
    "active": Series.active,
    "priority": Series.priority,
    "goal_id": Series.goal_id,
    "parent_series_id": Series.parent_series_id,
    "first_occurrence_at": Series.first_occurrence_at,
    "last_occurrence_at": Series.last_occurrence_at,
}

_TASK_SORT_COLUMNS = {
    "start_time": Task.start_time,
    "due_time": Task.due_time,
    "priority": Task.priority,
    "title": Task.title,
    "created_at": Task.created_at,
}


def _column_condition(column, op: str, value: Any):
    if op == "$eq":
        return column.is_(None) if value is None else column == value
    if op == "$ne":
        return column.is_not(None) if value is None else column != value
    if op == "$gt":
        return column > value
    if op == "$gte":
        return column >= value
    if op == "$lt":
        return column < value
    if op == "$lte":
        return column <= value
    if op in {"$in", "$nin"}:
        if not isinstance(value, list):
            raise ValueError(f"{op} expects a list")
        return column.in_(value) if op == "$in" else column.not_in(value)
    raise ValueError(f"Unsupported query operator: {op}")


def parse_query(q: Optional[str], columns: Mapping[str, Any]) -> list[Any]:
    """Translate a JSON filter like {"start_time": {"$gte": 0}} into SQL criteria.

    `user_id` keys are ignored: ownership always comes from the caller.
    """
    if not q or not str(q).strip():
        return []
    try:
        filters = json.loads(q)
    except json.JSONDecodeError as e:
        raise ValueError("Invalid query JSON") from e
    if not isinstance(filters, dict):
        raise ValueError("Query must be a JSON object")

    criteria: list[Any] = []
    for field, cond in filters.items():
        if field == "user_id":
            continue
        column = columns.get(field)
        if column is None:
            raise ValueError(f"Unsupported query field: {field}")
        if isinstance(cond, dict):
            for op, value in cond.items():
                criteria.append(_column_condition(column, op, value))
        else:
            criteria.append(_column_condition(column, "$eq", cond))
    return criteria


# ---------------------- Tasks ----------------------


def get_task(db: Session, *, current_user: User, task_id: int) -> Task:
    task = store.find_task(db, user_id=current_user.id, task_id=task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def list_tasks(
    db: Session,
    *,
    current_user: User,
    q: Optional[str] = None,
    sort: str = "start_time",
) -> list[Task]:
    criteria = parse_query(q, _TASK_QUERY_COLUMNS)

    desc = False
    key = (sort or "").strip()
    if key.startswith("-"):
        desc = True
        key = key[1:]
    primary = _TASK_SORT_COLUMNS.get(key, Task.start_time)
    order = (primary.desc(), Task.id.desc()) if desc else (primary.asc(), Task.id.asc())

    return store.find_tasks(db, user_id=current_user.id, criteria=criteria, order_by=order)


def _generate_for(anchor: int, rule: RecurrenceRule) -> list[int]:
    occurrences = generate_occurrences(anchor, rule, max_occurrences=_max_occurrences())
    if not occurrences:
        raise RecurrenceError("Recurrence rule produces no occurrences")
    return occurrences


def _refresh_series_bounds(db: Session, *, series: Series) -> Optional[Series]:
    """Recompute the cached bounds from current membership; drop the series when empty."""
    first, last = store.occurrence_bounds(db, user_id=series.user_id, series_id=series.id)
    if first is None:
        store.delete_series_by_id(db, user_id=series.user_id, series_id=series.id)
        logger.info("Deleted empty series %s", series.id)
        return None
    series.first_occurrence_at = first
    series.last_occurrence_at = last
    db.flush()
    return series


def _materialize_series(
    db: Session,
    *,
    current_user: User,
    template: TaskTemplate,
    rule: RecurrenceRule,
    anchor: int,
    parent_series_id: Optional[int] = None,
    split_from: Optional[int] = None,
) -> SeriesResult:
    """Create a series plus one task per generated occurrence."""
    if not template.title:
        raise ValueError("title is required")

    occurrences = _generate_for(anchor, rule)
    goal_id = _resolve_goal_id(db, user_id=current_user.id, goal_id=template.goal_id)
    tags = _resolve_tags(db, user_id=current_user.id, tag_ids=template.tag_ids)
    stored_rule = rule.to_storage()

    series = store.insert_series(
        db,
        values={
            "user_id": current_user.id,
            "title": template.title,
            "description": template.description,
            "goal_id": goal_id,
            "recurrence": stored_rule,
            "color": template.color or DEFAULT_SERIES_COLOR,
            "priority": template.priority,
            "active": True,
            "parent_series_id": parent_series_id,
            "split_from_occurrence_on": split_from,
        },
        tags=tags,
    )

    rows = []
    for start in occurrences:
        values = template.occurrence_values(start)
        values.update(
            {
                "user_id": current_user.id,
                "goal_id": goal_id,
                "series_id": series.id,
                "is_recurring": True,
                "recurrence": stored_rule,
            }
        )
        rows.append(values)
    tasks = store.insert_tasks(db, rows=rows, tags=tags)

    _refresh_series_bounds(db, series=series)
    logger.info(
        "Created series %s for user %s with %d occurrence(s) (%s)",
        series.id,
        current_user.id,
        len(tasks),
        rule.frequency,
    )
    return SeriesResult(series=series, tasks=tasks)


def create_task(db: Session, *, current_user: User, payload: Payload) -> Union[Task, SeriesResult]:
    """Create a standalone task, or a series and its occurrences when a rule is given."""
    data = _normalize_payload(payload)
    if not data.get("title"):
        raise ValueError("title is required")

    rule: Optional[RecurrenceRule] = data.pop("recurrence", None)
    if data.get("start_time") is None:
        data["start_time"] = now_ms()

    with _unit_of_work(db):
        if rule is None:
            tag_ids = data.pop("tag_ids", [])
            data.pop("color", None)
            data["goal_id"] = _resolve_goal_id(db, user_id=current_user.id, goal_id=data.get("goal_id"))
            tags = _resolve_tags(db, user_id=current_user.id, tag_ids=tag_ids)
            task = store.insert_task(
                db,
                values={**data, "user_id": current_user.id, "is_recurring": False},
                tags=tags,
            )
            result: Union[Task, SeriesResult] = task
        else:
            template = build_task_template(payload=data)
            result = _materialize_series(
                db,
                current_user=current_user,
                template=template,
                rule=rule,
                anchor=int(data["start_time"]),
            )
    return result


def _apply_to_task(db: Session, *, current_user: User, task: Task, data: Mapping[str, Any]) -> Task:
    values = {k: v for k, v in data.items() if k not in {"recurrence", "tag_ids", "color"}}
    if "goal_id" in values:
        values["goal_id"] = _resolve_goal_id(db, user_id=current_user.id, goal_id=values["goal_id"])
    tags = _resolve_tags(db, user_id=current_user.id, tag_ids=data["tag_ids"]) if "tag_ids" in data else None
    updated = store.update_task_by_id(db, user_id=current_user.id, task_id=task.id, values=values, tags=tags)
    if updated is None:
        raise NotFoundError("Task", task.id)
    return updated


def _bulk_field_update(
    db: Session,
    *,
    current_user: User,
    series: Series,
    data: Mapping[str, Any],
    start_from: Optional[int] = None,
) -> int:
    values = {k: v for k, v in data.items() if k not in SCHEDULING_FIELDS and k not in {"tag_ids", "color"}}
    if "goal_id" in values:
        values["goal_id"] = _resolve_goal_id(db, user_id=current_user.id, goal_id=values["goal_id"])
    tags = _resolve_tags(db, user_id=current_user.id, tag_ids=data["tag_ids"]) if "tag_ids" in data else None
    return store.update_tasks(
        db,
        user_id=current_user.id,
        series_id=series.id,
        values=values,
        tags=tags,
        start_from=start_from,
    )


def _schedule_changed(task: Task, series: Series, data: Mapping[str, Any]) -> bool:
    rule = data.get("recurrence")
    if rule is not None and not rules_equal(rule, series.recurrence):
        return True
    for field in ("start_time", "end_time"):
        if data.get(field) is not None and data[field] != getattr(task, field):
            return True
    return False


def _anchor_with_time_of_day(date_ms: int, template: TaskTemplate, rule: RecurrenceRule) -> int:
    """The local date of `date_ms` at the template's local time-of-day."""
    if rule.timezone and template.start_time is not None:
        return combine_local_date_and_time(date_ms, int(template.start_time), rule.timezone)
    return int(date_ms)


def _regenerate_series(
    db: Session,
    *,
    current_user: User,
    task: Task,
    series: Series,
    data: Mapping[str, Any],
) -> SeriesResult:
    rule = data.get("recurrence") or coerce_rule(series.recurrence)
    template = build_task_template(entity=task, payload=data)

    first, _ = store.occurrence_bounds(db, user_id=current_user.id, series_id=series.id)
    earliest = first if first is not None else int(task.start_time)
    anchor = _anchor_with_time_of_day(earliest, template, rule)

    old_series_id = series.id
    result = _materialize_series(db, current_user=current_user, template=template, rule=rule, anchor=anchor)
    removed = store.delete_tasks(db, user_id=current_user.id, series_id=old_series_id)
    store.delete_series_by_id(db, user_id=current_user.id, series_id=old_series_id)
    logger.info(
        "Regenerated series %s as %s (%d old task(s) removed)",
        old_series_id,
        result.series.id,
        removed,
    )
    return result


def _split_series(
    db: Session,
    *,
    current_user: User,
    task: Task,
    series: Series,
    data: Mapping[str, Any],
) -> SeriesResult:
    rule = data.get("recurrence") or coerce_rule(series.recurrence)
    template = build_task_template(entity=task, payload=data)

    split_at = int(task.start_time)
    anchor = _anchor_with_time_of_day(split_at, template, rule)

    result = _materialize_series(
        db,
        current_user=current_user,
        template=template,
        rule=rule,
        anchor=anchor,
        parent_series_id=series.id,
        split_from=split_at,
    )
    removed = store.delete_tasks(db, user_id=current_user.id, series_id=series.id, start_from=split_at)
    remaining = _refresh_series_bounds(db, series=series)
    logger.info(
        "Split series %s at %s into %s (%d task(s) moved, old series %s)",
        series.id,
        split_at,
        result.series.id,
        removed,
        "kept" if remaining is not None else "deleted",
    )
    return result


def _promote_to_series(db: Session, *, current_user: User, task: Task, data: Mapping[str, Any]) -> SeriesResult:
    rule: RecurrenceRule = data["recurrence"]
    template = build_task_template(entity=task, payload=data)
    anchor = int(template.start_time) if template.start_time is not None else now_ms()

    result = _materialize_series(db, current_user=current_user, template=template, rule=rule, anchor=anchor)
    store.delete_task_by_id(db, user_id=current_user.id, task_id=task.id)
    logger.info("Converted task %s into series %s", task.id, result.series.id)
    return result


def update_task(
    db: Session,
    *,
    current_user: User,
    task_id: int,
    payload: Payload,
    mode: Union[str, EditMode, None] = EditMode.single,
) -> Union[Task, SeriesResult]:
    """Apply an edit to one task or to its series, depending on `mode`.

    - standalone task: plain update, or conversion into a series when the
      payload carries a recurrence rule;
    - single: only the target task;
    - all / following: bulk field update when neither the rule nor the
      start/end time changes, otherwise regeneration (all) or a split at the
      target occurrence (following).
    """
    edit_mode = _parse_mode(mode)
    task = get_task(db, current_user=current_user, task_id=task_id)
    data = _normalize_payload(payload)

    series = None
    if task.series_id is not None:
        series = store.find_one_series(db, user_id=current_user.id, series_id=task.series_id)

    # Series members are ordered and split by start_time; it can move but never be cleared.
    if series is not None and "start_time" in data and data["start_time"] is None:
        raise ValueError("start_time cannot be cleared on a task that belongs to a series")

    with _unit_of_work(db):
        if series is None:
            if data.get("recurrence") is not None:
                result: Union[Task, SeriesResult] = _promote_to_series(
                    db, current_user=current_user, task=task, data=data
                )
            else:
                result = _apply_to_task(db, current_user=current_user, task=task, data=data)

        elif edit_mode == EditMode.single:
            result = _apply_to_task(db, current_user=current_user, task=task, data=data)

        elif not _schedule_changed(task, series, data):
            start_from = int(task.start_time) if edit_mode == EditMode.following else None
            count = _bulk_field_update(db, current_user=current_user, series=series, data=data, start_from=start_from)

            if edit_mode == EditMode.all:
                series_values = {
                    k: data[k]
                    for k in SERIES_DESCRIPTIVE_FIELDS
                    if k in data and (data[k] is not None or k in {"description", "goal_id"})
                }
                if "goal_id" in series_values:
                    series_values["goal_id"] = _resolve_goal_id(
                        db, user_id=current_user.id, goal_id=series_values["goal_id"]
                    )
                tags = (
                    _resolve_tags(db, user_id=current_user.id, tag_ids=data["tag_ids"]) if "tag_ids" in data else None
                )
                store.update_series_by_id(
                    db, user_id=current_user.id, series_id=series.id, values=series_values, tags=tags
                )

            logger.info("Updated %d task(s) of series %s (mode=%s)", count, series.id, edit_mode.value)
            result = task

        elif edit_mode == EditMode.all:
            result = _regenerate_series(db, current_user=current_user, task=task, series=series, data=data)

        else:
            result = _split_series(db, current_user=current_user, task=task, series=series, data=data)

    if isinstance(result, Task):
        db.refresh(result)
    return result


def delete_task(
    db: Session,
    *,
    current_user: User,
    task_id: int,
    mode: Union[str, EditMode, None] = EditMode.single,
) -> dict[str, Any]:
    """Delete a task, its whole series, or the target and every later occurrence.

    `single` never touches the series, even when it removes the last member.
    """
    edit_mode = _parse_mode(mode)
    task = get_task(db, current_user=current_user, task_id=task_id)

    with _unit_of_work(db):
        if edit_mode == EditMode.single or task.series_id is None:
            store.delete_task_by_id(db, user_id=current_user.id, task_id=task.id)
            deleted = 1
            message = "Task deleted successfully"

        elif edit_mode == EditMode.all:
            series_id = int(task.series_id)
            deleted = store.delete_tasks(db, user_id=current_user.id, series_id=series_id)
            store.delete_series_by_id(db, user_id=current_user.id, series_id=series_id)
            logger.info("Deleted series %s and %d task(s)", series_id, deleted)
            message = "All tasks in the series deleted successfully"

        else:
            series_id = int(task.series_id)
            deleted = store.delete_tasks(
                db, user_id=current_user.id, series_id=series_id, start_from=int(task.start_time)
            )
            series = store.find_one_series(db, user_id=current_user.id, series_id=series_id)
            if series is not None:
                _refresh_series_bounds(db, series=series)
            logger.info("Deleted %d task(s) of series %s from %s on", deleted, series_id, task.start_time)
            message = "This and following tasks deleted successfully"

    return {"message": message, "deleted_count": deleted}


# ---------------------- Series ----------------------


def get_series(db: Session, *, current_user: User, series_id: int) -> Series:
    series = store.find_one_series(db, user_id=current_user.id, series_id=series_id)
    if series is None:
        raise NotFoundError("Series", series_id)
    return series


def list_series(db: Session, *, current_user: User, q: Optional[str] = None) -> list[Series]:
    criteria = parse_query(q, _SERIES_QUERY_COLUMNS)
    return store.find_series(db, user_id=current_user.id, criteria=criteria)


def list_series_tasks(db: Session, *, current_user: User, series_id: int) -> list[Task]:
    series = get_series(db, current_user=current_user, series_id=series_id)
    return store.find_tasks(db, user_id=current_user.id, series_id=series.id)


def update_series(db: Session, *, current_user: User, series_id: int, payload: Payload) -> Series:
    """Patch descriptive series fields. Bounds and the rule are not writable here."""
    series = get_series(db, current_user=current_user, series_id=series_id)
    data = _normalize_payload(payload, allowed=SERIES_MUTABLE_FIELDS)

    with _unit_of_work(db):
        values = {k: v for k, v in data.items() if k != "tag_ids"}
        for key in ("title", "color", "active", "priority"):
            if key in values and values[key] is None:
                values.pop(key)
        if "goal_id" in values:
            values["goal_id"] = _resolve_goal_id(db, user_id=current_user.id, goal_id=values["goal_id"])
        tags = _resolve_tags(db, user_id=current_user.id, tag_ids=data["tag_ids"]) if "tag_ids" in data else None
        store.update_series_by_id(db, user_id=current_user.id, series_id=series.id, values=values, tags=tags)

    db.refresh(series)
    return series


def delete_series(db: Session, *, current_user: User, series_id: int) -> dict[str, Any]:
    series = get_series(db, current_user=current_user, series_id=series_id)
    with _unit_of_work(db):
        deleted = store.delete_tasks(db, user_id=current_user.id, series_id=series.id)
        store.delete_series_by_id(db, user_id=current_user.id, series_id=series.id)
    logger.info("Deleted series %s and %d task(s)", series_id, deleted)
    return {"message": "Series deleted successfully", "deleted_count": deleted}


def reconcile_series(db: Session, *, user_id: Optional[int] = None) -> int:
    """Recompute every series' bounds and delete series without members.

    Returns the number of deleted series.
    """
    removed = 0
    with _unit_of_work(db):
        for series in store.find_series(db, user_id=user_id):
            if _refresh_series_bounds(db, series=series) is None:
                removed += 1
    if removed:
        logger.info("Reconciliation removed %d empty series", removed)
    return removed
