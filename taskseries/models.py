from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class TaskStatus(str, enum.Enum):
    todo = "todo"
    in_progress = "in progress"
    pending = "pending"
    done = "done"
    closed = "closed"


class TaskType(str, enum.Enum):
    task = "task"
    holiday = "holiday"
    birthday = "birthday"
    events = "events"
    reminder = "reminder"


class GoalStatus(str, enum.Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class EditMode(str, enum.Enum):
    single = "single"  # only the targeted occurrence
    all = "all"  # every occurrence of the series
    following = "following"  # the targeted occurrence and every later one


# Many-to-many association tables
TaskTag = Table(
    "task_tags",
    Base.metadata,
    Column("task_id", ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

SeriesTag = Table(
    "series_tags",
    Base.metadata,
    Column("series_id", ForeignKey("series.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("auth_uid", name="uq_users_auth_uid"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Subject claim of the identity provider's token.
    auth_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class Goal(Base):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=GoalStatus.active.value, nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="#3B82F6", nullable=False)
    target_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(16), default="#b9c7c6", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Series(Base):
    """One recurring definition; its occurrences are the Tasks pointing at it.

    `first_occurrence_at`/`last_occurrence_at` are a cache of min/max
    `Task.start_time` over the member tasks and are recomputed, never
    incremented.
    """

    __tablename__ = "series"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    goal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True
    )

    recurrence: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    first_occurrence_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_occurrence_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Set when the series was produced by a "this and following" split.
    parent_series_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("series.id", ondelete="SET NULL"), nullable=True
    )
    split_from_occurrence_on: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    color: Mapped[str] = mapped_column(String(16), default="#8B5CF6", nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    tags: Mapped[list[Tag]] = relationship("Tag", secondary=SeriesTag)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_series_start", "series_id", "start_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=TaskStatus.todo.value, nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    task_type: Mapped[str] = mapped_column(String(16), default=TaskType.task.value, nullable=False)

    # Epoch milliseconds.
    start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    end_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    due_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    complete_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Absent => standalone task.
    series_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("series.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    goal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_backlog: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    skipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    plan_period: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    series: Mapped[Series | None] = relationship("Series")
    tags: Mapped[list[Tag]] = relationship("Tag", secondary=TaskTag)
