from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import GoalStatus, TaskStatus, TaskType
from .utils.time_utils import MAX_EPOCH_MS, MIN_EPOCH_MS, get_zone


Frequency = Literal["daily", "weekly", "monthly", "yearly"]


# ---- Recurrence --------------------------------------------------------------------


class WeekAndDayOfMonth(BaseModel):
    """Nth weekday of the month: week_of_month=2, day_of_week=1 is the second Monday."""

    week_of_month: int = Field(..., ge=1, le=5)
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")


class RecurrenceRule(BaseModel):
    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    # Required by the generator; absence is reported there as an input error.
    timezone: Optional[str] = Field(default=None, description="IANA zone, e.g. 'Europe/Berlin'")

    count: Optional[int] = Field(default=None, ge=0)
    end_date: Optional[int] = Field(default=None, description="Inclusive upper bound, epoch ms")

    days_of_week: Optional[List[int]] = Field(default=None, description="Weekly: 0=Sunday .. 6=Saturday")
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="Single-day alias of days_of_week")
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    week_and_day_of_month: Optional[WeekAndDayOfMonth] = None

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        get_zone(v.strip())
        return v.strip()

    @field_validator("count")
    @classmethod
    def _zero_count_is_unset(cls, v: Optional[int]) -> Optional[int]:
        # Stored rules historically defaulted count to 0.
        return v or None

    @field_validator("days_of_week")
    @classmethod
    def _check_days_of_week(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return None
        days = sorted(set(int(d) for d in v))
        if any(d < 0 or d > 6 for d in days):
            raise ValueError("days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
        return days or None

    @model_validator(mode="after")
    def _check_combination(self) -> "RecurrenceRule":
        if self.count is not None and self.end_date is not None:
            raise ValueError("count and end_date are mutually exclusive")
        if self.day_of_month is not None and self.week_and_day_of_month is not None:
            raise ValueError("day_of_month and week_and_day_of_month are mutually exclusive")
        if self.day_of_week is not None:
            merged = set(self.days_of_week or []) | {self.day_of_week}
            self.days_of_week = sorted(merged)
            self.day_of_week = None
        return self

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ---- Users -------------------------------------------------------------------------


class UserOut(BaseModel):
    id: int
    auth_uid: str
    name: Optional[str]
    email: Optional[str]
    active: bool
    created_at: datetime
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


# ---- Goals & tags ------------------------------------------------------------------


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: GoalStatus = GoalStatus.active
    color: str = Field(default="#3B82F6", max_length=16)
    target_date: Optional[int] = None


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[GoalStatus] = None
    color: Optional[str] = Field(default=None, max_length=16)
    target_date: Optional[int] = None


class GoalOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str]
    status: str
    color: str
    target_date: Optional[int]

    class Config:
        from_attributes = True


class TagCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    color: str = Field(default="#b9c7c6", max_length=16)


class TagUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=16)


class TagOut(BaseModel):
    id: int
    title: str
    color: str

    class Config:
        from_attributes = True


# ---- Tasks -------------------------------------------------------------------------


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.todo
    priority: int = 1
    task_type: TaskType = TaskType.task

    # If omitted, the server uses the current time.
    start_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    end_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    due_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    complete_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)

    recurrence: Optional[RecurrenceRule] = None

    goal_id: Optional[int] = None
    tag_ids: List[int] = Field(default_factory=list)
    note: Optional[str] = None
    is_backlog: bool = False
    skipped: bool = False
    plan_period: Optional[str] = Field(default=None, max_length=32, description="e.g. '2025-W12' or '2025-03-23'")
    color: Optional[str] = Field(default=None, max_length=16, description="Series color for recurring tasks")


class TaskUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[int] = None
    task_type: Optional[TaskType] = None

    start_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    end_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    due_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)
    complete_time: Optional[int] = Field(default=None, ge=MIN_EPOCH_MS, le=MAX_EPOCH_MS)

    recurrence: Optional[RecurrenceRule] = None

    goal_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    note: Optional[str] = None
    is_backlog: Optional[bool] = None
    skipped: Optional[bool] = None
    plan_period: Optional[str] = Field(default=None, max_length=32)
    color: Optional[str] = Field(default=None, max_length=16)


class TaskOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str]
    status: str
    priority: int
    task_type: str

    start_time: Optional[int]
    end_time: Optional[int]
    due_time: Optional[int]
    complete_time: Optional[int]

    series_id: Optional[int]
    is_recurring: bool
    recurrence: Optional[Dict[str, Any]] = None

    goal_id: Optional[int]
    tags: List[TagOut] = []
    note: Optional[str]
    is_backlog: bool
    skipped: bool
    plan_period: Optional[str]

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---- Series ------------------------------------------------------------------------


class SeriesUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    goal_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    color: Optional[str] = Field(default=None, max_length=16)
    active: Optional[bool] = None
    priority: Optional[int] = None


class SeriesOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str]
    recurrence: Dict[str, Any]

    first_occurrence_at: Optional[int]
    last_occurrence_at: Optional[int]

    parent_series_id: Optional[int]
    split_from_occurrence_on: Optional[int]

    color: str
    active: bool
    priority: int
    goal_id: Optional[int]
    tags: List[TagOut] = []

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SeriesTasksOut(BaseModel):
    series: SeriesOut
    tasks: List[TaskOut]


TaskWriteResponse = Union[SeriesTasksOut, TaskOut]


class MessageOut(BaseModel):
    message: str
    deleted_count: int = 0
