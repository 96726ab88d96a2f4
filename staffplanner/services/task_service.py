from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Sequence, Union

from staffplanner.domain.batches import BatchInfo, batch_info, identify_batch_ids, shared_changes
from staffplanner.domain.entities import (
    TaskAssignment,
    TaskCompletion,
    TaskEntity,
    TaskInstanceOverride,
    TaskSkip,
)
from staffplanner.domain.enums import AssignmentTarget, RepeatInterval, TaskPriority, TaskStatus, Weekday
from staffplanner.domain.errors import NotFoundError, ValidationError
from staffplanner.domain.generator import generate_batch_dates
from staffplanner.domain.overlay import EffectiveOccurrence, Skipped, resolve
from staffplanner.domain.parsing import as_date, as_time
from staffplanner.domain.recurrence import expand, validate_rule
from staffplanner.infra.repository import TASK_COLUMNS, OverlayRepository, TaskRepository

logger = logging.getLogger(__name__)

DATE_FIELDS = ("due_date",)
TIME_FIELDS = ("due_time", "start_time", "end_time")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RepeatSpec:
    start_date: date | str
    end_date: date | str
    weekdays: Sequence[str | int | Weekday] = field(default_factory=tuple)
    interval_unit: RepeatInterval | str | None = RepeatInterval.WEEKLY


def _parse_targets(raw: Sequence[TaskAssignment | dict] | None) -> list[TaskAssignment] | None:
    if raw is None:
        return None
    targets = []
    for item in raw:
        if isinstance(item, dict):
            try:
                target_type = AssignmentTarget(item.get("target_type"))
            except ValueError:
                raise ValidationError(f"Unknown assignment target '{item.get('target_type')}'.") from None
            item = TaskAssignment(
                target_type=target_type,
                target_user_id=item.get("target_user_id"),
                target_group_id=item.get("target_group_id"),
            )
        if item.target_type == AssignmentTarget.USER and not item.target_user_id:
            raise ValidationError("Target ID is required for user or group assignments.")
        if item.target_type == AssignmentTarget.GROUP and not item.target_group_id:
            raise ValidationError("Target ID is required for user or group assignments.")
        targets.append(item)
    return targets


class TaskService:
    def __init__(self, repo: TaskRepository, overlays: OverlayRepository) -> None:
        self._repo = repo
        self._overlays = overlays

    def get_task(self, task_id: int) -> TaskEntity | None:
        return self._repo.get_task(task_id)

    def create_task(
        self,
        data: dict,
        created_by: str | None,
        repeat: RepeatSpec | None = None,
        now: datetime | None = None,
    ) -> list[TaskEntity]:
        """Create one task, or one row per date of ``repeat``.

        Every row of the call shares one ``created_at`` and one ``series_id``;
        later "this and future" operations find the batch through them.
        """
        normalized = self._normalize_data(data)
        assignments = _parse_targets(normalized.pop("assignments", None)) or []
        viewers = _parse_targets(normalized.pop("viewers", None)) or []
        if not str(normalized.get("title") or "").strip():
            raise ValidationError("Title is required.")

        normalized.setdefault("description", "")
        normalized.setdefault("priority", TaskPriority.MEDIUM.value)
        normalized.setdefault("status", TaskStatus.PENDING.value)
        normalized.setdefault("is_all_day", True)
        normalized.setdefault("is_activity", False)
        normalized.setdefault("is_recurring", False)

        if normalized["is_recurring"]:
            if repeat is not None:
                raise ValidationError("A recurring task cannot also be created as a repeated batch.")
            if not normalized.get("due_date"):
                raise ValidationError("A recurring task needs a start date.")
            rule = validate_rule(normalized.get("recurrence_rule") or "")
            normalized["recurrence_rule"] = rule.to_string()
        else:
            normalized["recurrence_rule"] = None

        series_id = None
        if repeat is not None:
            dates = [
                as_date(day)
                for day in generate_batch_dates(
                    repeat.start_date, repeat.end_date, repeat.weekdays, repeat.interval_unit
                )
            ]
            if not dates:
                raise ValidationError("No dates match the selected repeat pattern.")
            series_id = uuid.uuid4().hex
        else:
            dates = [normalized.get("due_date")]

        created_at = now or utcnow()
        rows = [
            {
                **normalized,
                "due_date": due_date,
                "created_by": created_by,
                "created_at": created_at,
                "updated_at": created_at,
                "series_id": series_id,
            }
            for due_date in dates
        ]
        tasks = self._repo.create_batch(rows, assignments, viewers)
        logger.info(
            "Created %d task row(s) %r for %s (series %s)",
            len(tasks),
            normalized["title"],
            created_by,
            series_id,
        )
        return tasks

    def update_task(self, task_id: int, data: dict, actor: str | None = None) -> TaskEntity | None:
        normalized = self._normalize_data(data)
        assignments = _parse_targets(normalized.pop("assignments", None))
        viewers = _parse_targets(normalized.pop("viewers", None))
        # The rule and the batch key are fixed once the task exists.
        for key in ("recurrence_rule", "is_recurring", "series_id", "created_at", "created_by"):
            normalized.pop(key, None)
        status = normalized.get("status")
        if status == TaskStatus.COMPLETED.value and "completed_at" not in normalized:
            normalized["completed_at"] = utcnow()
            normalized.setdefault("completed_by", actor)
        if status and status != TaskStatus.COMPLETED.value:
            normalized["completed_at"] = None
            normalized["completed_by"] = None
        return self._repo.update_task(task_id, normalized, assignments, viewers)

    def set_status(self, task_id: int, status: TaskStatus | str, actor: str | None = None) -> TaskEntity | None:
        return self.update_task(task_id, {"status": status}, actor)

    def complete_task(self, task_id: int, actor: str | None) -> TaskEntity | None:
        return self.set_status(task_id, TaskStatus.COMPLETED, actor)

    def delete_task(self, task_id: int) -> None:
        self._repo.delete_task(task_id)

    def update_future(self, task_id: int, data: dict) -> int:
        """Apply an edit to this row and every later row of its batch."""
        reference = self._require_task(task_id)
        task_ids = identify_batch_ids(reference, self._repo.list_batch_candidates(reference))
        if not task_ids:
            raise NotFoundError("No tasks found to update.")

        normalized = self._normalize_data(data)
        assignments = _parse_targets(normalized.pop("assignments", None))
        viewers = _parse_targets(normalized.pop("viewers", None))
        changes = shared_changes(normalized)
        if changes or assignments is not None or viewers is not None:
            self._repo.update_many(task_ids, changes, assignments, viewers)
        logger.info("Updated %d task(s) in the batch of task %s", len(task_ids), task_id)
        return len(task_ids)

    def delete_future(self, task_id: int) -> int:
        reference = self._require_task(task_id)
        task_ids = identify_batch_ids(reference, self._repo.list_batch_candidates(reference))
        if not task_ids:
            raise NotFoundError("No tasks found to delete.")
        self._repo.delete_many(task_ids)
        logger.info("Deleted %d task(s) in the batch of task %s", len(task_ids), task_id)
        return len(task_ids)

    def batch_info(self, task_id: int, today: date | None = None) -> BatchInfo:
        reference = self._repo.get_task(task_id)
        if reference is None:
            return BatchInfo(is_repeating=False, batch_size=0, future_count=0)
        candidates = self._repo.list_batch_candidates(reference)
        return batch_info(reference, candidates, today or date.today())

    def skip_occurrence(
        self, task_id: int, day: date | str, actor: str | None, now: datetime | None = None
    ) -> TaskSkip:
        task, on_date = self._require_occurrence(task_id, day)
        skip = self._overlays.upsert_skip(task.id, on_date, actor, now or utcnow())
        logger.info("Skipped task %s on %s", task_id, on_date)
        return skip

    def unskip_occurrence(self, task_id: int, day: date | str) -> bool:
        return self._overlays.delete_skip(task_id, as_date(day))

    def override_occurrence_time(
        self,
        task_id: int,
        day: date | str,
        override_time: time | str | None = None,
        override_start_time: time | str | None = None,
        override_end_time: time | str | None = None,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> TaskInstanceOverride:
        task, on_date = self._require_occurrence(task_id, day)
        start = as_time(override_start_time, "start time")
        end = as_time(override_end_time, "end time")
        if start and end and end <= start:
            raise ValidationError("End time must be after start time.")
        return self._overlays.upsert_override(
            task.id,
            on_date,
            as_time(override_time, "time"),
            start,
            end,
            actor,
            now or utcnow(),
        )

    def clear_occurrence_override(self, task_id: int, day: date | str) -> bool:
        return self._overlays.delete_override(task_id, as_date(day))

    def complete_occurrence(
        self, task_id: int, day: date | str, actor: str | None, now: datetime | None = None
    ) -> TaskCompletion:
        task, on_date = self._require_occurrence(task_id, day)
        completion = self._overlays.upsert_completion(task.id, on_date, actor, now or utcnow())
        logger.info("Completed task %s occurrence %s by %s", task_id, on_date, actor)
        return completion

    def uncomplete_occurrence(self, task_id: int, day: date | str) -> bool:
        return self._overlays.delete_completion(task_id, as_date(day))

    def resolve_occurrence(self, task_id: int, day: date | str) -> Union[EffectiveOccurrence, Skipped]:
        task, on_date = self._require_occurrence(task_id, day)
        return resolve(task, on_date, self._overlays.list_overlays(on_date, on_date))

    def _require_task(self, task_id: int) -> TaskEntity:
        task = self._repo.get_task(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    def _require_occurrence(self, task_id: int, day: date | str) -> tuple[TaskEntity, date]:
        task = self._require_task(task_id)
        on_date = as_date(day)
        if not task.is_recurring or not task.recurrence_rule or task.due_date is None:
            raise ValidationError("Only recurring tasks have individual occurrences.")
        if not expand(task.recurrence_rule, task.due_date, on_date, on_date):
            raise ValidationError(f"{on_date.isoformat()} is not an occurrence of this task.")
        return task, on_date

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        unknown = set(normalized) - TASK_COLUMNS - {"assignments", "viewers"}
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}.")
        for key in ("status", "priority"):
            value = normalized.get(key)
            if value is None:
                continue
            enum_cls = TaskStatus if key == "status" else TaskPriority
            try:
                normalized[key] = enum_cls(value).value
            except ValueError:
                raise ValidationError(f"Unknown {key} '{value}'.") from None
        for key in DATE_FIELDS:
            if key in normalized:
                value = normalized[key]
                normalized[key] = as_date(value, key.replace("_", " ")) if value not in (None, "") else None
        for key in TIME_FIELDS:
            if key in normalized:
                normalized[key] = as_time(normalized[key], key.replace("_", " "))
        return normalized
