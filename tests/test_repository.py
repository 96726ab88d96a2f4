from __future__ import annotations

from datetime import date, datetime, time

import pytest

from staffplanner.domain.entities import TaskAssignment
from staffplanner.domain.enums import AssignmentTarget, EventType, TaskStatus
from staffplanner.domain.errors import StorageError
from staffplanner.domain.filters import DateRange, ViewerContext
from staffplanner.infra.models import (
    EmployeeGroupModel,
    GroupMembershipModel,
    LeaveRequestModel,
    TaskModel,
    UserModel,
)
from staffplanner.infra.people_repository import DirectoryRepository, LeaveRepository
from staffplanner.infra.repository import OverlayRepository, TaskRepository
from staffplanner.services.calendar_service import CalendarService
from staffplanner.services.task_service import RepeatSpec, TaskService

CREATED = datetime(2025, 1, 1, 8, 0)
AT = datetime(2025, 1, 8, 12, 0)


def _row(**overrides) -> dict:
    row = {
        "title": "Water plants",
        "description": "",
        "status": "pending",
        "priority": "medium",
        "is_all_day": True,
        "is_activity": False,
        "is_recurring": False,
        "created_by": "admin-1",
        "created_at": CREATED,
        "updated_at": CREATED,
    }
    row.update(overrides)
    return row


@pytest.fixture
def tasks(session_factory) -> TaskRepository:
    return TaskRepository(session_factory)


@pytest.fixture
def overlays(session_factory) -> OverlayRepository:
    return OverlayRepository(session_factory)


@pytest.fixture
def people(session_factory):
    with session_factory() as session:
        session.add_all([
            UserModel(id="admin-1", full_name="Alex Admin", role="admin"),
            UserModel(id="staff-1", full_name="Maria", role="employee"),
            UserModel(id="staff-2", full_name="Jon", role="employee"),
            EmployeeGroupModel(id="g-1", name="Kitchen"),
        ])
        session.flush()
        session.add(GroupMembershipModel(user_id="staff-1", group_id="g-1"))
        session.add_all([
            LeaveRequestModel(
                user_id="staff-1",
                leave_type="vacation",
                status="approved",
                start_date=date(2025, 1, 9),
                end_date=date(2025, 1, 10),
            ),
            LeaveRequestModel(
                user_id="staff-2",
                leave_type="sick",
                status="approved",
                start_date=date(2025, 1, 20),
                end_date=date(2025, 1, 24),
                selected_dates=["2025-01-20", "2025-01-22"],
            ),
            LeaveRequestModel(
                user_id="staff-2",
                leave_type="pto",
                status="pending",
                start_date=date(2025, 1, 14),
                end_date=date(2025, 1, 14),
            ),
            LeaveRequestModel(
                user_id="staff-1",
                leave_type="vacation",
                status="approved",
                start_date=date(2025, 3, 1),
                end_date=date(2025, 3, 2),
            ),
        ])
        session.commit()
    return session_factory


def test_create_batch_round_trip(tasks) -> None:
    assignment = TaskAssignment(AssignmentTarget.USER, target_user_id="staff-1")
    created = tasks.create_batch(
        [_row(due_date=date(2025, 1, 6), series_id="s-1"), _row(due_date=date(2025, 1, 13), series_id="s-1")],
        assignments=[assignment],
    )

    assert [t.id for t in created] == [1, 2]
    loaded = tasks.get_task(2)
    assert loaded.series_id == "s-1"
    assert loaded.assignments == (assignment,)
    assert [t.id for t in tasks.list_batch_candidates(loaded)] == [1, 2]


def test_create_batch_is_atomic(tasks) -> None:
    with pytest.raises(StorageError, match="Failed to create tasks"):
        tasks.create_batch([_row(due_date=date(2025, 1, 6)), _row(title=None, due_date=date(2025, 1, 13))])

    assert tasks.list_tasks_in_range(date(2025, 1, 1), date(2025, 1, 31)) == []


def test_update_many_replaces_assignments(tasks) -> None:
    tasks.create_batch(
        [_row(due_date=date(2025, 1, 6)), _row(due_date=date(2025, 1, 13))],
        assignments=[TaskAssignment(AssignmentTarget.ALL)],
    )
    group = TaskAssignment(AssignmentTarget.GROUP, target_group_id="g-1")

    assert tasks.update_many([1, 2], {"priority": "high"}, assignments=[group]) == 2

    for task_id in (1, 2):
        task = tasks.get_task(task_id)
        assert task.priority.value == "high"
        assert task.assignments == (group,)


def test_delete_many_and_missing_rows(tasks) -> None:
    tasks.create_batch([_row(due_date=date(2025, 1, 6)), _row(due_date=date(2025, 1, 13))])

    assert tasks.delete_many([1, 99]) == 1
    assert tasks.get_task(1) is None
    assert tasks.update_task(99, {"title": "x"}) is None


def test_range_queries_split_single_and_recurring(tasks) -> None:
    tasks.create_batch([
        _row(due_date=date(2025, 1, 6)),
        _row(due_date=date(2025, 2, 6)),
        _row(due_date=None),
        _row(is_recurring=True, recurrence_rule="FREQ=DAILY", due_date=date(2024, 12, 1)),
        _row(is_recurring=True, recurrence_rule="FREQ=DAILY", due_date=date(2025, 3, 1)),
    ])

    assert [t.id for t in tasks.list_tasks_in_range(date(2025, 1, 1), date(2025, 1, 31))] == [1]
    assert [t.id for t in tasks.list_recurring_definitions(date(2025, 1, 31))] == [4]


def test_legacy_rows_are_found_by_title_and_creator(tasks) -> None:
    tasks.create_batch([
        _row(due_date=date(2025, 1, 6)),
        _row(due_date=date(2025, 1, 13)),
        _row(title="Feed cat", due_date=date(2025, 1, 13)),
        _row(created_by="admin-2", due_date=date(2025, 1, 13)),
    ])

    reference = tasks.get_task(1)

    assert [t.id for t in tasks.list_batch_candidates(reference)] == [1, 2]


def test_completion_upsert_keeps_one_row(tasks, overlays) -> None:
    tasks.create_batch([_row(is_recurring=True, recurrence_rule="FREQ=DAILY", due_date=date(2025, 1, 1))])

    overlays.upsert_completion(1, date(2025, 1, 8), "staff-1", AT)
    stored = overlays.upsert_completion(1, date(2025, 1, 8), "staff-2", AT)

    snapshot = overlays.list_overlays(date(2025, 1, 1), date(2025, 1, 31))
    assert len(snapshot.completions) == 1
    assert snapshot.completion_for(1, date(2025, 1, 8)).completed_by == "staff-2"
    assert stored.completed_by == "staff-2"

    assert overlays.delete_completion(1, date(2025, 1, 8)) is True
    assert overlays.delete_completion(1, date(2025, 1, 8)) is False


def test_override_with_no_times_is_stored(tasks, overlays) -> None:
    tasks.create_batch([_row(is_recurring=True, recurrence_rule="FREQ=DAILY", due_date=date(2025, 1, 1))])

    overlays.upsert_override(1, date(2025, 1, 8), time(9, 0), None, None, "admin-1", AT)
    overlays.upsert_override(1, date(2025, 1, 8), None, None, None, "admin-1", AT)
    overlays.upsert_skip(1, date(2025, 1, 9), "admin-1", AT)

    snapshot = overlays.list_overlays(date(2025, 1, 8), date(2025, 1, 8))
    override = snapshot.override_for(1, date(2025, 1, 8))
    assert override is not None
    assert override.override_time is None
    assert not snapshot.skips


def test_leave_listing(people) -> None:
    leaves = LeaveRepository(people)

    listed = leaves.list_approved_overlapping(date(2025, 1, 1), date(2025, 1, 31))
    assert [(l.user_id, l.user_name) for l in listed] == [("staff-1", "Maria"), ("staff-2", "Jon")]
    assert listed[1].selected_dates == (date(2025, 1, 20), date(2025, 1, 22))

    mine = leaves.list_approved_overlapping(date(2025, 1, 1), date(2025, 1, 31), user_id="staff-1")
    assert [l.start_date for l in mine] == [date(2025, 1, 9)]


def test_directory_viewer_context_and_names(people) -> None:
    directory = DirectoryRepository(people)

    staff = directory.viewer_context("staff-1")
    admin = directory.viewer_context("admin-1")

    assert staff.group_ids == frozenset({"g-1"})
    assert staff.is_admin is False
    assert admin.is_admin is True
    assert directory.display_names()["g-1"] == "Kitchen"


def test_calendar_for_employee_end_to_end(people) -> None:
    tasks = TaskRepository(people)
    overlays = OverlayRepository(people)
    service = TaskService(tasks, overlays)
    calendar = CalendarService(tasks, overlays, LeaveRepository(people), DirectoryRepository(people))

    service.create_task(
        {
            "title": "Set the table",
            "is_all_day": False,
            "due_time": "18:00",
            "assignments": [{"target_type": "group", "target_group_id": "g-1"}],
        },
        created_by="admin-1",
        repeat=RepeatSpec("2025-01-01", "2025-01-31", ["FR"], "biweekly"),
    )
    [walk] = service.create_task(
        {
            "title": "Walk the dog",
            "is_recurring": True,
            "recurrence_rule": "FREQ=WEEKLY;BYDAY=MO",
            "due_date": "2025-01-06",
            "viewers": [{"target_type": "user", "target_user_id": "staff-1"}],
            "assignments": [{"target_type": "user", "target_user_id": "staff-2"}],
        },
        created_by="admin-1",
    )
    service.create_task(
        {"title": "Admin audit", "due_date": "2025-01-15", "assignments": [{"target_type": "all_admins"}]},
        created_by="admin-1",
    )
    service.skip_occurrence(walk.id, "2025-01-13", actor="admin-1")
    service.complete_occurrence(walk.id, "2025-01-20", actor="staff-2")

    viewer = calendar.viewer_for("staff-1")
    events = calendar.calendar(DateRange(date(2025, 1, 1), date(2025, 1, 31)), viewer)

    task_events = [e for e in events if e.type == EventType.TASK]
    leave_events = [e for e in events if e.type == EventType.LEAVE]
    assert [e.id for e in task_events if not e.is_recurring] == ["task-1", "task-2", "task-3"]
    assert task_events[0].start == datetime(2025, 1, 3, 18, 0)
    walks = [e for e in task_events if e.is_recurring]
    assert [e.instance_date for e in walks] == [date(2025, 1, 6), date(2025, 1, 20), date(2025, 1, 27)]
    assert all(e.is_view_only for e in walks)
    assert walks[1].status == TaskStatus.COMPLETED.value
    assert task_events[0].assignees == ("Kitchen (Group)",)
    assert [e.id for e in leave_events] == ["leave-1"]


def test_unreadable_rows_are_dropped_from_calendar(people) -> None:
    with people() as session:
        session.add_all([
            LeaveRequestModel(
                user_id="staff-1",
                leave_type="vacation",
                status="approved",
                start_date=date(2025, 1, 20),
                end_date=date(2025, 1, 21),
                selected_dates=["2025-01-20T00:00:00"],
            ),
            LeaveRequestModel(
                user_id="staff-2",
                leave_type="sabbatical",
                status="approved",
                start_date=date(2025, 1, 27),
                end_date=date(2025, 1, 28),
            ),
            TaskModel(**_row(due_date=date(2025, 1, 6))),
            TaskModel(**_row(priority="whenever", due_date=date(2025, 1, 7))),
            TaskModel(**_row(is_recurring=True, recurrence_rule="FREQ=DAILY", status="paused", due_date=date(2025, 1, 1))),
        ])
        session.commit()
    tasks = TaskRepository(people)
    leaves = LeaveRepository(people)
    calendar = CalendarService(tasks, OverlayRepository(people), leaves, DirectoryRepository(people))

    assert len(leaves.list_approved_overlapping(date(2025, 1, 1), date(2025, 1, 31))) == 2
    assert len(tasks.list_tasks_in_range(date(2025, 1, 1), date(2025, 1, 31))) == 1
    assert tasks.list_recurring_definitions(date(2025, 1, 31)) == []

    events = calendar.calendar(DateRange(date(2025, 1, 1), date(2025, 1, 31)), ViewerContext())

    assert [e.id for e in events] == ["task-1", "leave-1", "leave-2-2025-01-20", "leave-2-2025-01-22"]
