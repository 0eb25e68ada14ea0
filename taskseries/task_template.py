from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

from .models import Task, TaskStatus, TaskType


DEFAULT_SERIES_COLOR = "#8B5CF6"


@dataclass(frozen=True)
class TaskTemplate:
    """Field values shared by every occurrence materialized for one series."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: str = TaskStatus.todo.value
    priority: int = 1
    task_type: str = TaskType.task.value
    goal_id: Optional[int] = None
    tag_ids: tuple[int, ...] = ()
    note: Optional[str] = None
    is_backlog: bool = False
    skipped: bool = False
    plan_period: Optional[str] = None
    color: Optional[str] = None

    start_time: Optional[int] = None
    end_time: Optional[int] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return int(self.end_time) - int(self.start_time)

    def with_start(self, start_time: int) -> "TaskTemplate":
        return replace(self, start_time=int(start_time))

    def occurrence_values(self, start_time: int) -> dict[str, Any]:
        """Column values for the task occurring at `start_time`."""
        duration = self.duration_ms
        return {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "task_type": self.task_type,
            "goal_id": self.goal_id,
            "note": self.note,
            "is_backlog": self.is_backlog,
            "skipped": self.skipped,
            "plan_period": self.plan_period,
            "start_time": int(start_time),
            "end_time": int(start_time) + duration if duration is not None else None,
        }


TEMPLATE_FIELDS = frozenset(f.name for f in fields(TaskTemplate))


def _entity_values(entity: Task) -> dict[str, Any]:
    values = {
        name: getattr(entity, name)
        for name in TEMPLATE_FIELDS
        if name not in {"tag_ids", "color"} and hasattr(entity, name)
    }
    values["tag_ids"] = tuple(int(t.id) for t in (entity.tags or []))
    series = getattr(entity, "series", None)
    if series is not None:
        values["color"] = series.color
    return values


def build_task_template(
    *,
    entity: Optional[Task] = None,
    payload: Optional[Mapping[str, Any]] = None,
) -> TaskTemplate:
    """Merge defaults, an existing task and a request payload.

    Precedence: payload over entity over defaults. Only keys present in the
    payload count as supplied. When the payload moves `start_time` without
    giving `end_time`, the entity's duration is kept.
    """
    merged: dict[str, Any] = {}
    if entity is not None:
        merged.update(_entity_values(entity))

    supplied = {k: v for k, v in (payload or {}).items() if k in TEMPLATE_FIELDS}
    if "tag_ids" in supplied:
        supplied["tag_ids"] = tuple(int(t) for t in (supplied["tag_ids"] or ()))
    merged.update(supplied)

    if (
        entity is not None
        and "start_time" in supplied
        and "end_time" not in supplied
        and entity.start_time is not None
        and entity.end_time is not None
        and supplied["start_time"] is not None
    ):
        merged["end_time"] = int(supplied["start_time"]) + (int(entity.end_time) - int(entity.start_time))

    return TaskTemplate(**merged)
