"""Flatten tasks, recurring occurrences and approved leave into calendar events."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping, Optional

from .entities import CalendarEvent, LeaveEntity, TaskAssignment, TaskEntity
from .enums import AssignmentTarget, EventType, LeaveStatus, LeaveType
from .filters import DateRange, ViewerContext
from .overlay import SKIPPED, EffectiveOccurrence, OverlaySnapshot, resolve
from .recurrence import MAX_OCCURRENCES, expand

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#60a5fa"
HOLIDAY_COLOR = "#fbbf24"
VACATION_COLOR = "#67e8f9"
SICK_COLOR = "#fca5a5"
HOLIDAY_PREFIX = "Holiday:"

DEFAULT_START = time(9, 0)
DEFAULT_DURATION = timedelta(hours=1)


def event_window(
    day: date,
    *,
    is_all_day: bool,
    is_activity: bool,
    due_time: Optional[time],
    start_time: Optional[time],
    end_time: Optional[time],
    default_start: time = DEFAULT_START,
    duration: timedelta = DEFAULT_DURATION,
) -> tuple[date | datetime, date | datetime]:
    if is_all_day:
        return day, day
    if is_activity and start_time and end_time:
        return datetime.combine(day, start_time), datetime.combine(day, end_time)
    start = datetime.combine(day, due_time or default_start)
    return start, start + duration


def _targets_viewer(assignment: TaskAssignment, viewer: ViewerContext) -> bool:
    target = assignment.target_type
    if target == AssignmentTarget.ALL:
        return True
    if target == AssignmentTarget.ALL_ADMINS:
        return viewer.is_admin
    if target == AssignmentTarget.USER:
        return assignment.target_user_id is not None and assignment.target_user_id == viewer.user_id
    if target == AssignmentTarget.GROUP:
        return assignment.target_group_id in viewer.group_ids
    return False


def visibility(task: TaskEntity, viewer: ViewerContext) -> tuple[bool, bool]:
    """``(visible, view_only)`` of ``task`` for ``viewer``."""
    if not viewer.is_scoped:
        return True, False
    if any(_targets_viewer(a, viewer) for a in task.assignments):
        return True, False
    if any(_targets_viewer(v, viewer) for v in task.viewers):
        return True, True
    return False, False


def format_assignees(
    assignments: Iterable[TaskAssignment],
    names: Mapping[str, str] | None = None,
) -> tuple[str, ...]:
    names = names or {}
    labels = []
    for assignment in assignments:
        if assignment.target_type == AssignmentTarget.ALL:
            labels.append("All Employees")
        elif assignment.target_type == AssignmentTarget.ALL_ADMINS:
            labels.append("All Admins")
        elif assignment.target_type == AssignmentTarget.USER and assignment.target_user_id:
            labels.append(names.get(assignment.target_user_id, assignment.target_user_id))
        elif assignment.target_type == AssignmentTarget.GROUP and assignment.target_group_id:
            group = names.get(assignment.target_group_id, assignment.target_group_id)
            labels.append(f"{group} (Group)")
    return tuple(labels)


class CalendarProjector:
    def __init__(
        self,
        viewer: ViewerContext,
        date_range: DateRange,
        *,
        max_occurrences: int = MAX_OCCURRENCES,
        default_start: time = DEFAULT_START,
        duration: timedelta = DEFAULT_DURATION,
        names: Mapping[str, str] | None = None,
    ) -> None:
        self._viewer = viewer
        self._range = date_range
        self._max_occurrences = max_occurrences
        self._default_start = default_start
        self._duration = duration
        self._names = names or {}

    def project(
        self,
        tasks_in_range: Iterable[TaskEntity],
        recurring_definitions: Iterable[TaskEntity],
        overlays: OverlaySnapshot,
        leaves: Iterable[LeaveEntity],
    ) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        for task in tasks_in_range:
            events.extend(self._guarded(task, self._task_events, overlays))
        for task in recurring_definitions:
            events.extend(self._guarded(task, self._recurring_events, overlays))
        for leave in leaves:
            try:
                events.extend(self._leave_events(leave))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Dropping leave %s from calendar: %s", leave.id, exc, exc_info=True)
        events.sort(key=_sort_key)
        return events

    def _guarded(self, task, build, overlays: OverlaySnapshot) -> list[CalendarEvent]:
        try:
            visible, view_only = visibility(task, self._viewer)
            if not visible:
                return []
            return build(task, overlays, view_only)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Dropping task %s from calendar: %s", task.id, exc, exc_info=True)
            return []

    def _window(self, task: TaskEntity, day: date, due_time, start_time, end_time):
        return event_window(
            day,
            is_all_day=task.is_all_day,
            is_activity=task.is_activity,
            due_time=due_time,
            start_time=start_time,
            end_time=end_time,
            default_start=self._default_start,
            duration=self._duration,
        )

    def _task_events(self, task: TaskEntity, overlays: OverlaySnapshot, view_only: bool) -> list[CalendarEvent]:
        if task.due_date is None or not self._range.contains(task.due_date):
            return []
        start, end = self._window(task, task.due_date, task.due_time, task.start_time, task.end_time)
        return [
            CalendarEvent(
                id=f"task-{task.id}",
                type=EventType.TASK,
                title=task.title,
                start=start,
                end=end,
                all_day=task.is_all_day,
                color=task.category_color or DEFAULT_COLOR,
                resource_id=task.id,
                status=task.status.value,
                priority=task.priority.value,
                category=task.category,
                is_activity=task.is_activity,
                is_view_only=view_only,
                assignees=format_assignees(task.assignments, self._names),
            )
        ]

    def _recurring_events(self, task: TaskEntity, overlays: OverlaySnapshot, view_only: bool) -> list[CalendarEvent]:
        if task.due_date is None or task.due_date > self._range.end:
            return []
        if not task.recurrence_rule:
            return self._task_events(task, overlays, view_only)

        events = []
        dates = expand(
            task.recurrence_rule,
            task.due_date,
            self._range.start,
            self._range.end,
            max_occurrences=self._max_occurrences,
        )
        for day in dates:
            try:
                occurrence = resolve(task, day, overlays)
                if occurrence is SKIPPED:
                    continue
                events.append(self._occurrence_event(task, occurrence, view_only))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Dropping occurrence %s of task %s: %s", day, task.id, exc, exc_info=True)
        return events

    def _occurrence_event(
        self, task: TaskEntity, occurrence: EffectiveOccurrence, view_only: bool
    ) -> CalendarEvent:
        start, end = self._window(
            task, occurrence.date, occurrence.due_time, occurrence.start_time, occurrence.end_time
        )
        return CalendarEvent(
            id=f"task-{occurrence.instance_id}",
            type=EventType.TASK,
            title=task.title,
            start=start,
            end=end,
            all_day=task.is_all_day,
            color=task.category_color or DEFAULT_COLOR,
            resource_id=task.id,
            status=occurrence.status.value,
            priority=task.priority.value,
            category=task.category,
            is_recurring=True,
            is_activity=task.is_activity,
            is_view_only=view_only,
            assignees=format_assignees(task.assignments, self._names),
            instance_date=occurrence.date,
            has_time_override=occurrence.has_time_override,
        )

    def _leave_events(self, leave: LeaveEntity) -> list[CalendarEvent]:
        if leave.status != LeaveStatus.APPROVED:
            return []
        if self._viewer.is_scoped and leave.user_id != self._viewer.user_id:
            return []
        if leave.start_date > self._range.end or leave.end_date < self._range.start:
            return []

        reason = leave.reason or ""
        is_holiday = leave.leave_type == LeaveType.HOLIDAY or reason.startswith(HOLIDAY_PREFIX)
        holiday_name = (reason.removeprefix(HOLIDAY_PREFIX).strip() or None) if is_holiday else None
        if is_holiday:
            label, color = "Holiday", HOLIDAY_COLOR
        elif leave.leave_type in (LeaveType.VACATION, LeaveType.PTO):
            label, color = "Vacation", VACATION_COLOR
        else:
            label, color = "Sick", SICK_COLOR
        who = leave.user_name or "Employee"
        title = f"{who} - {holiday_name or label}"

        if leave.selected_dates:
            runs = _consecutive_runs(leave.selected_dates)
            multiple = True
        else:
            runs = [(leave.start_date, leave.end_date)]
            multiple = False

        events = []
        for first, last in runs:
            if first > self._range.end or last < self._range.start:
                continue
            events.append(
                CalendarEvent(
                    id=f"leave-{leave.id}-{first.isoformat()}" if multiple else f"leave-{leave.id}",
                    type=EventType.LEAVE,
                    title=title,
                    start=first,
                    # exclusive end for all-day spans
                    end=last + timedelta(days=1),
                    all_day=True,
                    color=color,
                    resource_id=leave.id,
                    user_id=leave.user_id,
                    leave_type=LeaveType.HOLIDAY.value if is_holiday else leave.leave_type.value,
                    is_holiday=is_holiday,
                    holiday_name=holiday_name,
                )
            )
        return events


def _consecutive_runs(days: Iterable[date]) -> list[tuple[date, date]]:
    runs: list[tuple[date, date]] = []
    for day in sorted(set(days)):
        if runs and runs[-1][1] + timedelta(days=1) == day:
            runs[-1] = (runs[-1][0], day)
        else:
            runs.append((day, day))
    return runs


def _sort_key(event: CalendarEvent) -> tuple[datetime, str]:
    start = event.start
    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min)
    return start, event.id


def project_calendar(
    tasks_in_range: Iterable[TaskEntity],
    recurring_definitions: Iterable[TaskEntity],
    overlays: OverlaySnapshot,
    leaves: Iterable[LeaveEntity],
    viewer: ViewerContext,
    date_range: DateRange,
    **options,
) -> list[CalendarEvent]:
    """Display events for ``date_range`` as seen by ``viewer``, ordered by start."""
    projector = CalendarProjector(viewer, date_range, **options)
    return projector.project(tasks_in_range, recurring_definitions, overlays, leaves)
