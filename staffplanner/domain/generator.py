"""Dates for materialised task rows created together as one batch."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Sequence

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from .enums import RepeatInterval, Weekday
from .errors import ValidationError
from .parsing import as_date
from .recurrence import weekday_from_code

_RELATIVE_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)
_SHORT_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def parse_interval_unit(value: RepeatInterval | str | None) -> RepeatInterval | None:
    if value is None or value == "":
        return None
    try:
        return RepeatInterval(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown repeat interval '{value}'.") from None


def _parse_weekdays(weekdays: Iterable[str | int | Weekday]) -> list[Weekday]:
    days = sorted({weekday_from_code(day) for day in weekdays})
    if not days:
        raise ValidationError("Select at least one day of the week.")
    return days


def nth_weekday_of_month(year: int, month: int, weekday: Weekday, n: int) -> date | None:
    """The ``n``-th ``weekday`` of the month, or None when the month has fewer."""
    candidate = date(year, month, 1) + relativedelta(weekday=_RELATIVE_WEEKDAYS[weekday](+n))
    if candidate.month != month:
        return None
    return candidate


def _week_windows(start: date, end: date, every: int) -> Iterable[date]:
    week_start = start
    week_number = 0
    while week_start <= end:
        if week_number % every == 0:
            yield week_start
        week_start += timedelta(weeks=1)
        week_number += 1


def _weekly_dates(start: date, end: date, days: Sequence[Weekday], every: int) -> list[date]:
    dates = []
    for week_start in _week_windows(start, end, every):
        for day in days:
            target = week_start + timedelta(days=(day - week_start.weekday()) % 7)
            if start <= target <= end:
                dates.append(target)
    return dates


def _monthly_dates(start: date, end: date, days: Sequence[Weekday]) -> list[date]:
    # "Same week pattern": the nth weekday of the month of the first hit.
    dates = []
    for day in days:
        first = start + timedelta(days=(day - start.weekday()) % 7)
        if first > end:
            continue
        nth = (first.day - 1) // 7 + 1
        month = date(first.year, first.month, 1)
        while month <= end:
            target = nth_weekday_of_month(month.year, month.month, day, nth)
            if target and start <= target <= end:
                dates.append(target)
            month += relativedelta(months=1)
    return dates


def generate_batch_dates(
    start_date: date | str,
    end_date: date | str,
    weekdays: Iterable[str | int | Weekday],
    interval_unit: RepeatInterval | str | None,
) -> list[str]:
    """ISO dates, sorted and unique, that one batch should materialise.

    An empty list means nothing matched; callers reject the request.
    """
    start = as_date(start_date, "start date")
    end = as_date(end_date, "end date")
    days = _parse_weekdays(weekdays)
    unit = parse_interval_unit(interval_unit)
    if end < start:
        raise ValidationError("End date must be on or after start date.")

    if unit is None:
        dates = [start] if start.weekday() in days else []
    elif unit is RepeatInterval.WEEKLY:
        dates = _weekly_dates(start, end, days, every=1)
    elif unit is RepeatInterval.BIWEEKLY:
        dates = _weekly_dates(start, end, days, every=2)
    else:
        dates = _monthly_dates(start, end, days)

    return sorted({day.isoformat() for day in dates})


def describe_repeat(
    weekdays: Iterable[str | int | Weekday],
    interval_unit: RepeatInterval | str | None,
) -> str:
    unit = parse_interval_unit(interval_unit)
    days = sorted({weekday_from_code(day) for day in weekdays})
    if unit is None or not days:
        return ""
    names = ", ".join(_SHORT_NAMES[day] for day in days)
    if unit is RepeatInterval.WEEKLY:
        text = "every week"
    elif unit is RepeatInterval.BIWEEKLY:
        text = "every 2 weeks"
    else:
        text = "monthly (same week pattern)"
    return f"Repeats {text} on {names}"
