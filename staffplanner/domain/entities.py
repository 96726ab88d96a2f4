from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from .enums import AssignmentTarget, EventType, LeaveStatus, LeaveType, TaskPriority, TaskStatus


@dataclass(frozen=True)
class TaskAssignment:
    target_type: AssignmentTarget
    target_user_id: str | None = None
    target_group_id: str | None = None


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[date]
    due_time: Optional[time]
    is_all_day: bool
    is_activity: bool
    start_time: Optional[time]
    end_time: Optional[time]
    is_recurring: bool
    recurrence_rule: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    completed_by: str | None = None
    completed_at: Optional[datetime] = None
    category: str | None = None
    category_color: str | None = None
    series_id: str | None = None
    assignments: tuple[TaskAssignment, ...] = ()
    viewers: tuple[TaskAssignment, ...] = ()


@dataclass(frozen=True)
class TaskSkip:
    task_id: int
    skipped_date: date
    skipped_by: str | None = None
    skipped_at: Optional[datetime] = None


@dataclass(frozen=True)
class TaskInstanceOverride:
    task_id: int
    instance_date: date
    override_time: Optional[time]
    override_start_time: Optional[time]
    override_end_time: Optional[time]
    created_by: str | None = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TaskCompletion:
    task_id: int
    completion_date: date
    completed_by: str | None
    completed_at: datetime


@dataclass(frozen=True)
class LeaveEntity:
    id: int
    user_id: str
    leave_type: LeaveType
    status: LeaveStatus
    start_date: date
    end_date: date
    selected_dates: tuple[date, ...] = ()
    reason: str | None = None
    user_name: str | None = None
    total_days: float | None = None


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    type: EventType
    title: str
    start: date | datetime
    end: date | datetime
    all_day: bool
    color: str
    resource_id: int
    status: str | None = None
    priority: str | None = None
    category: str | None = None
    is_recurring: bool = False
    is_activity: bool = False
    is_view_only: bool = False
    assignees: tuple[str, ...] = ()
    instance_date: Optional[date] = None
    has_time_override: bool = False
    user_id: str | None = None
    leave_type: str | None = None
    is_holiday: bool = False
    holiday_name: str | None = None
