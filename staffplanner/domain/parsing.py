from __future__ import annotations

from datetime import date, datetime, time

from .errors import ValidationError


def as_date(value: date | str, field_name: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"The {field_name} '{value}' is not a valid YYYY-MM-DD date.") from None


def as_time(value: time | str | None, field_name: str = "time") -> time | None:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"The {field_name} '{value}' is not a valid HH:MM time.") from None
