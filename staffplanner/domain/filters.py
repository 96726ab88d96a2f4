from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .errors import ValidationError


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError("End date must be on or after start date.")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class ViewerContext:
    """Who is looking at the calendar.

    ``user_id=None`` is the unscoped admin view and sees every event.
    """

    user_id: str | None = None
    group_ids: frozenset[str] = field(default_factory=frozenset)
    is_admin: bool = False

    @property
    def is_scoped(self) -> bool:
        return self.user_id is not None
