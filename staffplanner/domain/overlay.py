"""Per-occurrence state of rule-based recurring tasks.

Three kinds of record sit on top of a recurring definition, each keyed by
``(task_id, date)``: skips, time overrides and completions. ``resolve``
applies them in a fixed order:

1. a skip hides the occurrence, whatever else is recorded for it;
2. otherwise the definition supplies due time and activity window;
3. an override replaces all three times with its stored values, and a stored
   ``None`` means "no time" rather than "use the definition";
4. a completion marks the occurrence completed, otherwise it is pending.

Nothing here writes. A missing record is simply absent from the snapshot,
which keeps "no override" distinct from "override to no time".
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from .entities import TaskCompletion, TaskEntity, TaskInstanceOverride, TaskSkip
from .enums import TaskStatus

OverlayKey = tuple[int, date]


class Skipped(enum.Enum):
    SKIPPED = "skipped"


SKIPPED = Skipped.SKIPPED


@dataclass(frozen=True)
class EffectiveOccurrence:
    task_id: int
    date: date
    due_time: Optional[time]
    start_time: Optional[time]
    end_time: Optional[time]
    status: TaskStatus = TaskStatus.PENDING
    completed_by: str | None = None
    completed_at: Optional[datetime] = None
    has_time_override: bool = False

    @property
    def instance_id(self) -> str:
        return f"{self.task_id}-{self.date.isoformat()}"


@dataclass(frozen=True)
class OverlaySnapshot:
    skips: Mapping[OverlayKey, TaskSkip] = field(default_factory=dict)
    overrides: Mapping[OverlayKey, TaskInstanceOverride] = field(default_factory=dict)
    completions: Mapping[OverlayKey, TaskCompletion] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only views over private copies.
        for name in ("skips", "overrides", "completions"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @classmethod
    def build(
        cls,
        skips: Iterable[TaskSkip] = (),
        overrides: Iterable[TaskInstanceOverride] = (),
        completions: Iterable[TaskCompletion] = (),
    ) -> "OverlaySnapshot":
        # Later records win, matching upsert on the natural key.
        return cls(
            skips={(s.task_id, s.skipped_date): s for s in skips},
            overrides={(o.task_id, o.instance_date): o for o in overrides},
            completions={(c.task_id, c.completion_date): c for c in completions},
        )

    def skip_for(self, task_id: int, day: date) -> TaskSkip | None:
        return self.skips.get((task_id, day))

    def override_for(self, task_id: int, day: date) -> TaskInstanceOverride | None:
        return self.overrides.get((task_id, day))

    def completion_for(self, task_id: int, day: date) -> TaskCompletion | None:
        return self.completions.get((task_id, day))

    def with_skip(self, skip: TaskSkip) -> "OverlaySnapshot":
        return replace(self, skips={**self.skips, (skip.task_id, skip.skipped_date): skip})

    def with_override(self, override: TaskInstanceOverride) -> "OverlaySnapshot":
        key = (override.task_id, override.instance_date)
        return replace(self, overrides={**self.overrides, key: override})

    def with_completion(self, completion: TaskCompletion) -> "OverlaySnapshot":
        key = (completion.task_id, completion.completion_date)
        return replace(self, completions={**self.completions, key: completion})

    def without_completion(self, task_id: int, day: date) -> "OverlaySnapshot":
        remaining = {key: c for key, c in self.completions.items() if key != (task_id, day)}
        return replace(self, completions=remaining)


def resolve(
    task: TaskEntity,
    on_date: date,
    overlays: OverlaySnapshot,
) -> Union[EffectiveOccurrence, Skipped]:
    if task.id is None:
        raise ValueError("Cannot resolve an occurrence of an unsaved task")

    if overlays.skip_for(task.id, on_date) is not None:
        return SKIPPED

    occurrence = EffectiveOccurrence(
        task_id=task.id,
        date=on_date,
        due_time=task.due_time,
        start_time=task.start_time,
        end_time=task.end_time,
    )

    override = overlays.override_for(task.id, on_date)
    if override is not None:
        occurrence = replace(
            occurrence,
            due_time=override.override_time,
            start_time=override.override_start_time,
            end_time=override.override_end_time,
            has_time_override=True,
        )

    completion = overlays.completion_for(task.id, on_date)
    if completion is not None:
        occurrence = replace(
            occurrence,
            status=TaskStatus.COMPLETED,
            completed_by=completion.completed_by,
            completed_at=completion.completed_at,
        )
    return occurrence
