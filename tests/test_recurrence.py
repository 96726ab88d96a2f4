from __future__ import annotations

from datetime import date, timedelta

import pytest

from staffplanner.domain.enums import Frequency, Weekday
from staffplanner.domain.errors import ValidationError
from staffplanner.domain.recurrence import (
    MAX_OCCURRENCES,
    RecurrenceRule,
    build_rule,
    expand,
    parse_rule,
    validate_rule,
)


def _days(start: date, end: date) -> list[date]:
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


@pytest.mark.parametrize("offset", range(0, 70, 5))
def test_weekly_byday_returns_exactly_matching_weekdays(offset: int) -> None:
    anchor = date(2025, 1, 6)
    start = date(2025, 2, 1) + timedelta(days=offset)
    end = start + timedelta(days=27)

    result = expand("FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR", anchor, start, end)

    expected = [day for day in _days(start, end) if day.weekday() in (0, 2, 4)]
    assert result == expected
    assert len(result) == len(set(result))


@pytest.mark.parametrize(
    "rule",
    [
        "FREQ=DAILY",
        "FREQ=DAILY;INTERVAL=3",
        "FREQ=WEEKLY",
        "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR,SA,SU",
        "FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,TH",
        "FREQ=MONTHLY",
        "FREQ=MONTHLY;INTERVAL=5",
    ],
)
def test_expand_is_capped_and_stays_inside_range(rule: str) -> None:
    start, end = date(2025, 3, 10), date(2027, 3, 10)

    result = expand(rule, date(2024, 11, 30), start, end)

    assert len(result) <= MAX_OCCURRENCES
    assert all(start <= day <= end for day in result)
    assert result == sorted(set(result))


def test_daily_rule_over_long_range_hits_cap() -> None:
    result = expand("FREQ=DAILY", date(2025, 1, 1), date(2025, 1, 1), date(2026, 12, 31))

    assert len(result) == MAX_OCCURRENCES
    assert result[0] == date(2025, 1, 1)
    assert result[-1] == date(2025, 4, 10)


def test_expand_is_idempotent() -> None:
    args = ("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH", date(2025, 1, 2), date(2025, 2, 1), date(2025, 5, 1))

    assert expand(*args) == expand(*args)


def test_monthly_on_31st_clamps_to_month_end() -> None:
    result = expand("FREQ=MONTHLY", date(2025, 1, 31), date(2025, 1, 1), date(2025, 4, 30))

    assert result == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]


def test_monthly_on_31st_clamps_in_leap_year_and_after_fast_forward() -> None:
    leap = expand("FREQ=MONTHLY", date(2024, 1, 31), date(2024, 2, 1), date(2024, 3, 31))
    later = expand("FREQ=MONTHLY", date(2025, 1, 31), date(2025, 3, 1), date(2025, 4, 30))

    assert leap == [date(2024, 2, 29), date(2024, 3, 31)]
    assert later == [date(2025, 3, 31), date(2025, 4, 30)]


def test_unrecognized_frequency_yields_nothing() -> None:
    for rule in ("FREQ=YEARLY", "INTERVAL=2", "hello", "", None):
        assert expand(rule, date(2025, 1, 1), date(2025, 1, 1), date(2025, 12, 31)) == []


def test_long_lived_rule_fast_forwards_to_window() -> None:
    anchor = date(2015, 1, 1)
    start, end = date(2025, 6, 1), date(2025, 6, 10)

    result = expand("FREQ=DAILY;INTERVAL=3", anchor, start, end)

    assert result == [day for day in _days(start, end) if (day - anchor).days % 3 == 0]


def test_anchor_inside_range_is_first_occurrence() -> None:
    result = expand("FREQ=WEEKLY", date(2025, 1, 15), date(2025, 1, 1), date(2025, 1, 31))

    assert result == [date(2025, 1, 15), date(2025, 1, 22), date(2025, 1, 29)]


def test_biweekly_byday_uses_every_other_week() -> None:
    result = expand(
        "FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,TH", date(2025, 1, 7), date(2025, 1, 1), date(2025, 2, 28)
    )

    assert result == [
        date(2025, 1, 7),
        date(2025, 1, 9),
        date(2025, 1, 21),
        date(2025, 1, 23),
        date(2025, 2, 4),
        date(2025, 2, 6),
        date(2025, 2, 18),
        date(2025, 2, 20),
    ]


def test_byday_never_returns_days_before_anchor() -> None:
    result = expand("FREQ=WEEKLY;BYDAY=MO,WE,FR", date(2025, 1, 8), date(2025, 1, 6), date(2025, 1, 12))

    assert result == [date(2025, 1, 8), date(2025, 1, 10)]


def test_byday_includes_days_of_last_week_before_cursor() -> None:
    # The second step lands on Wed Jan 8, after the range end, but its week
    # still holds Monday Jan 6.
    result = expand("FREQ=WEEKLY;BYDAY=MO,WE", date(2025, 1, 1), date(2025, 1, 1), date(2025, 1, 6))

    assert result == [date(2025, 1, 1), date(2025, 1, 6)]


def test_until_stops_expansion() -> None:
    result = expand("FREQ=DAILY;UNTIL=20250105", date(2025, 1, 1), date(2025, 1, 1), date(2025, 1, 31))

    assert result == _days(date(2025, 1, 1), date(2025, 1, 5))


def test_empty_range_yields_nothing() -> None:
    assert expand("FREQ=DAILY", date(2025, 1, 1), date(2025, 2, 1), date(2025, 1, 1)) == []


def test_validate_rule_parses_tokens() -> None:
    rule = validate_rule("RRULE:FREQ=weekly;INTERVAL=2;BYDAY=fr,mo")

    assert rule == RecurrenceRule(
        frequency=Frequency.WEEKLY,
        interval=2,
        by_weekday=frozenset({Weekday.MO, Weekday.FR}),
    )
    assert rule.to_string() == "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR"


@pytest.mark.parametrize(
    "text",
    ["", "INTERVAL=2", "FREQ=HOURLY", "FREQ=DAILY;INTERVAL=0", "FREQ=DAILY;INTERVAL=x", "FREQ=WEEKLY;BYDAY=XX"],
)
def test_validate_rule_rejects_malformed_rules(text: str) -> None:
    with pytest.raises(ValidationError):
        validate_rule(text)
    assert parse_rule(text) is None


def test_build_rule_accepts_mixed_weekday_inputs() -> None:
    rule = build_rule("weekly", interval=1, weekdays=["MO", 2, Weekday.FR], until=date(2025, 6, 30))

    assert rule.to_string() == "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR;UNTIL=20250630"
