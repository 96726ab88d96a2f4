"""Which task rows were materialised together.

Rows created by one batch share ``series_id``. Rows without one (written
before that column existed, or created singly) are matched among themselves
on title, creator and the calendar day of ``created_at``; two unrelated tasks
with the same title created by the same admin on the same day are
indistinguishable under that rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping

from .entities import TaskEntity
from .enums import TaskStatus

EPOCH = date(1970, 1, 1)

# Never copied across a batch: each row keeps its own schedule and progress,
# and the batch key itself must not move.
PER_INSTANCE_FIELDS = frozenset({
    "id",
    "due_date",
    "status",
    "completed_by",
    "completed_at",
    "created_by",
    "created_at",
    "series_id",
    "is_recurring",
    "recurrence_rule",
})


@dataclass(frozen=True)
class BatchInfo:
    is_repeating: bool
    batch_size: int
    future_count: int


def _creation_day(task: TaskEntity) -> date | None:
    return task.created_at.date() if task.created_at else None


def in_same_batch(reference: TaskEntity, candidate: TaskEntity) -> bool:
    if reference.series_id:
        return candidate.series_id == reference.series_id
    return (
        candidate.series_id is None
        and candidate.title == reference.title
        and candidate.created_by == reference.created_by
        and _creation_day(candidate) == _creation_day(reference)
    )


def batch_members(reference: TaskEntity, candidates: Iterable[TaskEntity]) -> list[TaskEntity]:
    members = [task for task in candidates if in_same_batch(reference, task)]
    return sorted(members, key=lambda task: (task.due_date or EPOCH, task.id or 0))


def identify_batch_ids(reference: TaskEntity, candidates: Iterable[TaskEntity]) -> list[int]:
    """Ids of the reference row and its batch siblings due on or after it."""
    cutoff = reference.due_date or EPOCH
    return [
        task.id
        for task in batch_members(reference, candidates)
        if task.id is not None and (task.due_date or EPOCH) >= cutoff
    ]


def batch_info(reference: TaskEntity, candidates: Iterable[TaskEntity], today: date) -> BatchInfo:
    members = batch_members(reference, candidates)
    future = [
        task
        for task in members
        if task.due_date and task.due_date >= today and task.status != TaskStatus.COMPLETED
    ]
    return BatchInfo(
        is_repeating=len(members) > 1,
        batch_size=len(members),
        future_count=len(future),
    )


def shared_changes(changes: Mapping[str, object]) -> dict[str, object]:
    """The part of an edit that applies to every row of a batch."""
    return {key: value for key, value in changes.items() if key not in PER_INSTANCE_FIELDS}
