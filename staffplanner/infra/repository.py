from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Callable, Iterable, Iterator, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from staffplanner.domain.entities import (
    TaskAssignment,
    TaskCompletion,
    TaskEntity,
    TaskInstanceOverride,
    TaskSkip,
)
from staffplanner.domain.enums import AssignmentTarget, TaskPriority, TaskStatus
from staffplanner.domain.errors import StorageError
from staffplanner.domain.overlay import OverlaySnapshot

from .db import SessionLocal, transaction
from .models import (
    TaskAssignmentModel,
    TaskCompletionModel,
    TaskInstanceOverrideModel,
    TaskModel,
    TaskSkipModel,
    TaskViewerModel,
    utcnow,
)

logger = logging.getLogger(__name__)

TASK_COLUMNS = frozenset(
    column.name for column in TaskModel.__table__.columns if column.name != "id"
)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Database error while trying to %s", action)
        raise StorageError(f"Failed to {action}.") from exc


def convert_rows(rows: Iterable, converter: Callable, kind: str) -> list:
    """Convert each row, logging and dropping the ones that cannot be read."""
    converted = []
    for row in rows:
        try:
            converted.append(converter(row))
        except SQLAlchemyError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skipping unreadable %s: %s", kind, exc, exc_info=True)
    return converted


def _to_assignment(row: TaskAssignmentModel | TaskViewerModel) -> TaskAssignment:
    return TaskAssignment(
        target_type=AssignmentTarget(row.target_type),
        target_user_id=row.target_user_id,
        target_group_id=row.target_group_id,
    )


def _assignment_rows(model_cls, targets: Iterable[TaskAssignment]) -> list:
    return [
        model_cls(
            target_type=AssignmentTarget(target.target_type).value,
            target_user_id=target.target_user_id,
            target_group_id=target.target_group_id,
        )
        for target in targets
    ]


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        title=model.title,
        description=model.description,
        status=TaskStatus(model.status),
        priority=TaskPriority(model.priority),
        due_date=model.due_date,
        due_time=model.due_time,
        is_all_day=model.is_all_day,
        is_activity=model.is_activity,
        start_time=model.start_time,
        end_time=model.end_time,
        is_recurring=model.is_recurring,
        recurrence_rule=model.recurrence_rule,
        created_by=model.created_by,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_by=model.completed_by,
        completed_at=model.completed_at,
        category=model.category,
        category_color=model.category_color,
        series_id=model.series_id,
        assignments=tuple(_to_assignment(a) for a in model.assignments),
        viewers=tuple(_to_assignment(v) for v in model.viewers),
    )


def _apply(task: TaskModel, data: dict) -> None:
    for key, value in data.items():
        if key in TASK_COLUMNS:
            setattr(task, key, value)


class TaskRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        with storage_errors("load the task"), self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def create_batch(
        self,
        rows: Sequence[dict],
        assignments: Sequence[TaskAssignment] = (),
        viewers: Sequence[TaskAssignment] = (),
    ) -> list[TaskEntity]:
        """Insert every row in one transaction; nothing is written if any insert fails."""
        with storage_errors("create tasks"), transaction(self._session_factory) as session:
            models = []
            for row in rows:
                task = TaskModel()
                _apply(task, row)
                task.assignments = _assignment_rows(TaskAssignmentModel, assignments)
                task.viewers = _assignment_rows(TaskViewerModel, viewers)
                models.append(task)
            session.add_all(models)
            session.flush()
            return [_to_entity(task) for task in models]

    def update_task(
        self,
        task_id: int,
        data: dict,
        assignments: Sequence[TaskAssignment] | None = None,
        viewers: Sequence[TaskAssignment] | None = None,
    ) -> Optional[TaskEntity]:
        updated = self.update_many([task_id], data, assignments, viewers)
        return self.get_task(task_id) if updated else None

    def update_many(
        self,
        task_ids: Sequence[int],
        data: dict,
        assignments: Sequence[TaskAssignment] | None = None,
        viewers: Sequence[TaskAssignment] | None = None,
    ) -> int:
        if not task_ids:
            return 0
        with storage_errors("update tasks"), transaction(self._session_factory) as session:
            tasks = session.scalars(select(TaskModel).where(TaskModel.id.in_(task_ids))).all()
            for task in tasks:
                _apply(task, data)
                if assignments is not None:
                    task.assignments = _assignment_rows(TaskAssignmentModel, assignments)
                if viewers is not None:
                    task.viewers = _assignment_rows(TaskViewerModel, viewers)
                task.updated_at = utcnow()
            return len(tasks)

    def delete_task(self, task_id: int) -> None:
        self.delete_many([task_id])

    def delete_many(self, task_ids: Sequence[int]) -> int:
        if not task_ids:
            return 0
        with storage_errors("delete tasks"), transaction(self._session_factory) as session:
            tasks = session.scalars(select(TaskModel).where(TaskModel.id.in_(task_ids))).all()
            for task in tasks:
                session.delete(task)
            return len(tasks)

    def list_batch_candidates(self, reference: TaskEntity) -> list[TaskEntity]:
        stmt = select(TaskModel)
        if reference.series_id:
            stmt = stmt.where(TaskModel.series_id == reference.series_id)
        else:
            creator = (
                TaskModel.created_by.is_(None)
                if reference.created_by is None
                else TaskModel.created_by == reference.created_by
            )
            stmt = stmt.where(TaskModel.title == reference.title, creator)
        with storage_errors("fetch related tasks"), self._session_factory() as session:
            return [_to_entity(task) for task in session.scalars(stmt.order_by(TaskModel.due_date))]

    def list_tasks_in_range(self, start: date, end: date) -> list[TaskEntity]:
        stmt = (
            select(TaskModel)
            .where(
                TaskModel.is_recurring.is_(False),
                TaskModel.due_date.is_not(None),
                TaskModel.due_date.between(start, end),
            )
            .order_by(TaskModel.due_date.asc(), TaskModel.id.asc())
        )
        with storage_errors("load tasks"), self._session_factory() as session:
            return convert_rows(session.scalars(stmt), _to_entity, "task")

    def list_recurring_definitions(self, until: date) -> list[TaskEntity]:
        stmt = (
            select(TaskModel)
            .where(
                TaskModel.is_recurring.is_(True),
                TaskModel.due_date.is_not(None),
                TaskModel.due_date <= until,
            )
            .order_by(TaskModel.id.asc())
        )
        with storage_errors("load recurring tasks"), self._session_factory() as session:
            return convert_rows(session.scalars(stmt), _to_entity, "recurring task")


def _to_skip(row: TaskSkipModel) -> TaskSkip:
    return TaskSkip(
        task_id=row.task_id,
        skipped_date=row.skipped_date,
        skipped_by=row.skipped_by,
        skipped_at=row.skipped_at,
    )


def _to_override(row: TaskInstanceOverrideModel) -> TaskInstanceOverride:
    return TaskInstanceOverride(
        task_id=row.task_id,
        instance_date=row.instance_date,
        override_time=row.override_time,
        override_start_time=row.override_start_time,
        override_end_time=row.override_end_time,
        created_by=row.created_by,
        updated_at=row.updated_at,
    )


def _to_completion(row: TaskCompletionModel) -> TaskCompletion:
    return TaskCompletion(
        task_id=row.task_id,
        completion_date=row.completion_date,
        completed_by=row.completed_by,
        completed_at=row.completed_at,
    )


class OverlayRepository:
    """Skips, time overrides and completions keyed by (task_id, date)."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_overlays(self, start: date, end: date) -> OverlaySnapshot:
        with storage_errors("load occurrence overlays"), self._session_factory() as session:
            skips = session.scalars(
                select(TaskSkipModel).where(TaskSkipModel.skipped_date.between(start, end))
            ).all()
            overrides = session.scalars(
                select(TaskInstanceOverrideModel).where(
                    TaskInstanceOverrideModel.instance_date.between(start, end)
                )
            ).all()
            completions = session.scalars(
                select(TaskCompletionModel).where(
                    TaskCompletionModel.completion_date.between(start, end)
                )
            ).all()
            return OverlaySnapshot.build(
                skips=[_to_skip(row) for row in skips],
                overrides=[_to_override(row) for row in overrides],
                completions=[_to_completion(row) for row in completions],
            )

    def _upsert(self, model_cls, converter, key: dict, values: dict, action: str):
        # A concurrent insert of the same key surfaces as IntegrityError;
        # the retry then finds that row and updates it.
        with storage_errors(action):
            for attempt in range(2):
                try:
                    with transaction(self._session_factory) as session:
                        row = session.scalars(select(model_cls).filter_by(**key)).first()
                        if row is None:
                            row = model_cls(**key, **values)
                            session.add(row)
                        else:
                            for name, value in values.items():
                                setattr(row, name, value)
                        session.flush()
                        result = converter(row)
                    return result
                except IntegrityError:
                    if attempt:
                        raise
                    logger.info("Concurrent write on %s %s, retrying", model_cls.__tablename__, key)

    def _delete(self, model_cls, key: dict, action: str) -> bool:
        with storage_errors(action), transaction(self._session_factory) as session:
            result = session.execute(delete(model_cls).filter_by(**key))
            return bool(result.rowcount)

    def upsert_skip(self, task_id: int, day: date, skipped_by: str | None, at: datetime) -> TaskSkip:
        return self._upsert(
            TaskSkipModel,
            _to_skip,
            {"task_id": task_id, "skipped_date": day},
            {"skipped_by": skipped_by, "skipped_at": at},
            "skip task instance",
        )

    def delete_skip(self, task_id: int, day: date) -> bool:
        return self._delete(
            TaskSkipModel, {"task_id": task_id, "skipped_date": day}, "restore task instance"
        )

    def upsert_override(
        self,
        task_id: int,
        day: date,
        override_time: Optional[time],
        override_start_time: Optional[time],
        override_end_time: Optional[time],
        created_by: str | None,
        at: datetime,
    ) -> TaskInstanceOverride:
        return self._upsert(
            TaskInstanceOverrideModel,
            _to_override,
            {"task_id": task_id, "instance_date": day},
            {
                "override_time": override_time,
                "override_start_time": override_start_time,
                "override_end_time": override_end_time,
                "created_by": created_by,
                "updated_at": at,
            },
            "override task instance time",
        )

    def delete_override(self, task_id: int, day: date) -> bool:
        return self._delete(
            TaskInstanceOverrideModel,
            {"task_id": task_id, "instance_date": day},
            "clear task instance override",
        )

    def upsert_completion(
        self, task_id: int, day: date, completed_by: str | None, at: datetime
    ) -> TaskCompletion:
        return self._upsert(
            TaskCompletionModel,
            _to_completion,
            {"task_id": task_id, "completion_date": day},
            {"completed_by": completed_by, "completed_at": at},
            "complete task instance",
        )

    def delete_completion(self, task_id: int, day: date) -> bool:
        return self._delete(
            TaskCompletionModel,
            {"task_id": task_id, "completion_date": day},
            "uncomplete task instance",
        )
