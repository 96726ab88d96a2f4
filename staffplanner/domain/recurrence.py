"""Recurrence rules and their expansion into occurrence dates.

Rules use the ``FREQ`` / ``INTERVAL`` / ``BYDAY`` / ``UNTIL`` subset of the
iCalendar RRULE vocabulary, e.g. ``FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH``.

Expansion is a pure function of its inputs. Monthly steps are computed from
the anchor with ``relativedelta`` so a rule anchored on the 31st clamps to the
last day of shorter months (Jan 31, Feb 28, Mar 31) instead of drifting.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from dateutil.relativedelta import relativedelta

from .enums import Frequency, Weekday
from .errors import ValidationError

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 100


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    by_weekday: frozenset[Weekday] = frozenset()
    until: date | None = None

    def __post_init__(self) -> None:
        if self.interval < 1:
            raise ValidationError("Recurrence interval must be at least 1.")

    def to_string(self) -> str:
        parts = [f"FREQ={self.frequency.value}", f"INTERVAL={self.interval}"]
        if self.by_weekday:
            parts.append("BYDAY=" + ",".join(day.name for day in sorted(self.by_weekday)))
        if self.until:
            parts.append("UNTIL=" + self.until.strftime("%Y%m%d"))
        return ";".join(parts)


def weekday_from_code(value: str | int | Weekday) -> Weekday:
    if isinstance(value, Weekday):
        return value
    if isinstance(value, int):
        if 0 <= value <= 6:
            return Weekday(value)
        raise ValidationError(f"Weekday number {value} is out of range.")
    code = str(value).strip().upper()
    try:
        return Weekday[code]
    except KeyError:
        raise ValidationError(f"Unknown weekday code '{value}'.") from None


def _tokens(text: str) -> dict[str, str]:
    body = text.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]
    tokens: dict[str, str] = {}
    for part in body.split(";"):
        key, sep, value = part.partition("=")
        if sep:
            tokens[key.strip().upper()] = value.strip()
    return tokens


def _parse_until(value: str) -> date:
    try:
        return datetime.strptime(value[:8], "%Y%m%d").date()
    except ValueError:
        raise ValidationError(f"UNTIL value '{value}' is not a YYYYMMDD date.") from None


def validate_rule(text: str) -> RecurrenceRule:
    """Parse ``text`` strictly, raising ``ValidationError`` on any problem."""
    if not text or not text.strip():
        raise ValidationError("Recurrence rule is empty.")
    tokens = _tokens(text)

    raw_freq = tokens.get("FREQ", "").upper()
    try:
        frequency = Frequency(raw_freq)
    except ValueError:
        raise ValidationError("Recurrence rule must specify FREQ=DAILY, WEEKLY or MONTHLY.") from None

    interval = 1
    if "INTERVAL" in tokens:
        try:
            interval = int(tokens["INTERVAL"])
        except ValueError:
            raise ValidationError(f"INTERVAL value '{tokens['INTERVAL']}' is not a number.") from None

    by_weekday: frozenset[Weekday] = frozenset()
    if tokens.get("BYDAY"):
        by_weekday = frozenset(
            weekday_from_code(code) for code in tokens["BYDAY"].split(",") if code.strip()
        )

    until = _parse_until(tokens["UNTIL"]) if tokens.get("UNTIL") else None
    return RecurrenceRule(frequency=frequency, interval=interval, by_weekday=by_weekday, until=until)


def parse_rule(text: str | None) -> RecurrenceRule | None:
    """Lenient parse: a malformed rule becomes ``None`` instead of an error."""
    if not text:
        return None
    try:
        return validate_rule(text)
    except ValidationError as exc:
        logger.debug("Ignoring unparsable recurrence rule %r: %s", text, exc)
        return None


def build_rule(
    frequency: Frequency | str,
    interval: int = 1,
    weekdays: Iterable[str | int | Weekday] = (),
    until: date | None = None,
) -> RecurrenceRule:
    try:
        freq = Frequency(str(frequency).upper())
    except ValueError:
        raise ValidationError(f"Unknown recurrence frequency '{frequency}'.") from None
    return RecurrenceRule(
        frequency=freq,
        interval=interval,
        by_weekday=frozenset(weekday_from_code(day) for day in weekdays),
        until=until,
    )


def _periods_before(rule: RecurrenceRule, anchor: date, range_start: date) -> int:
    # Whole periods that end on or before range_start.
    if anchor >= range_start:
        return 0
    if rule.frequency is Frequency.DAILY:
        elapsed = (range_start - anchor).days
    elif rule.frequency is Frequency.WEEKLY:
        elapsed = (range_start - anchor).days // 7
    else:
        elapsed = (range_start.year - anchor.year) * 12 + (range_start.month - anchor.month)
    return max(elapsed // rule.interval, 0)


def _step(rule: RecurrenceRule, anchor: date, index: int) -> date:
    count = index * rule.interval
    if rule.frequency is Frequency.DAILY:
        return anchor + timedelta(days=count)
    if rule.frequency is Frequency.WEEKLY:
        return anchor + timedelta(weeks=count)
    return anchor + relativedelta(months=count)


def _week_of(day: date) -> date:
    """Sunday starting the calendar week that contains ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def expand(
    rule: RecurrenceRule | str | None,
    anchor: date,
    range_start: date,
    range_end: date,
    *,
    max_occurrences: int = MAX_OCCURRENCES,
) -> list[date]:
    """Occurrence dates of ``rule`` anchored at ``anchor`` inside the range.

    The result is ascending, free of duplicates, never earlier than the
    anchor and never outside ``[range_start, range_end]``. At most
    ``max_occurrences`` dates are produced and at most that many interval
    steps are taken.
    """
    if rule is None or isinstance(rule, str):
        rule = parse_rule(rule)
        if rule is None:
            return []

    last = range_end
    if rule.until and rule.until < last:
        last = rule.until
    first = max(range_start, anchor)
    if first > last:
        return []

    occurrences: list[date] = []
    seen: set[date] = set()
    index = _periods_before(rule, anchor, range_start)

    for _ in range(max_occurrences):
        cursor = _step(rule, anchor, index)
        if rule.frequency is Frequency.WEEKLY and rule.by_weekday:
            week_start = _week_of(cursor)
            if week_start > last:
                break
            candidates = [
                week_start + timedelta(days=offset)
                for offset in range(7)
                if (week_start + timedelta(days=offset)).weekday() in rule.by_weekday
            ]
        else:
            if cursor > last:
                break
            candidates = [cursor]

        for day in candidates:
            if first <= day <= last and day not in seen:
                seen.add(day)
                occurrences.append(day)
                if len(occurrences) >= max_occurrences:
                    return occurrences
        index += 1

    return occurrences
