from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime

from staffplanner.domain.entities import CalendarEvent
from staffplanner.domain.errors import StaffPlannerError
from staffplanner.domain.filters import DateRange, ViewerContext
from staffplanner.domain.generator import describe_repeat, generate_batch_dates
from staffplanner.domain.parsing import as_date
from staffplanner.domain.recurrence import expand, validate_rule
from staffplanner.infra.db import create_schema, init_db
from staffplanner.infra.logging import setup_logging
from staffplanner.infra.people_repository import DirectoryRepository, LeaveRepository
from staffplanner.infra.repository import OverlayRepository, TaskRepository
from staffplanner.services.calendar_service import CalendarService

logger = logging.getLogger(__name__)


def _format_moment(value: date | datetime) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    return value.isoformat()


def _format_event(event: CalendarEvent) -> str:
    if event.all_day:
        span = f"{_format_moment(event.start)} (all day)"
    else:
        span = f"{_format_moment(event.start)} - {_format_moment(event.end)}"
    flags = []
    if event.status:
        flags.append(event.status)
    if event.has_time_override:
        flags.append("moved")
    if event.is_view_only:
        flags.append("view only")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"{span}  {event.title}{suffix}"


def _cmd_calendar(args: argparse.Namespace) -> int:
    init_db()
    service = CalendarService(
        TaskRepository(), OverlayRepository(), LeaveRepository(), DirectoryRepository()
    )
    date_range = DateRange(as_date(args.start, "start date"), as_date(args.end, "end date"))
    if args.groups or args.admin:
        viewer = ViewerContext(user_id=args.user, group_ids=frozenset(args.groups), is_admin=args.admin)
    else:
        viewer = service.viewer_for(args.user)
    for event in service.calendar(date_range, viewer):
        print(_format_event(event))
    return 0


def _cmd_expand(args: argparse.Namespace) -> int:
    rule = validate_rule(args.rule)
    for day in expand(rule, as_date(args.anchor, "anchor"), as_date(args.start), as_date(args.end)):
        print(day.isoformat())
    return 0


def _cmd_batch_dates(args: argparse.Namespace) -> int:
    weekdays = [day for day in args.days.split(",") if day.strip()]
    interval = None if args.interval == "none" else args.interval
    dates = generate_batch_dates(args.start, args.end, weekdays, interval)
    description = describe_repeat(weekdays, interval)
    if description:
        print(description)
    for day in dates:
        print(day)
    return 0 if dates else 1


def _cmd_create_schema(args: argparse.Namespace) -> int:
    create_schema()
    print("Schema created.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="staffplanner", description="Household task scheduling")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    calendar = sub.add_parser("calendar", help="Print calendar events for a date range")
    calendar.add_argument("--start", required=True)
    calendar.add_argument("--end", required=True)
    calendar.add_argument("--user", default=None, help="Scope to one user's assignments")
    calendar.add_argument("--group", dest="groups", action="append", default=[])
    calendar.add_argument("--admin", action="store_true")
    calendar.set_defaults(handler=_cmd_calendar)

    expand_cmd = sub.add_parser("expand", help="List occurrences of a recurrence rule")
    expand_cmd.add_argument("--rule", required=True, help="e.g. FREQ=WEEKLY;BYDAY=MO,WE")
    expand_cmd.add_argument("--anchor", required=True)
    expand_cmd.add_argument("--start", required=True)
    expand_cmd.add_argument("--end", required=True)
    expand_cmd.set_defaults(handler=_cmd_expand)

    batch = sub.add_parser("batch-dates", help="Dates a repeated batch would create")
    batch.add_argument("--start", required=True)
    batch.add_argument("--end", required=True)
    batch.add_argument("--days", required=True, help="Comma-separated codes, e.g. MO,WE")
    batch.add_argument("--interval", default="weekly", choices=["none", "weekly", "biweekly", "monthly"])
    batch.set_defaults(handler=_cmd_batch_dates)

    schema = sub.add_parser("create-schema", help="Create tables without alembic (development)")
    schema.set_defaults(handler=_cmd_create_schema)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        return args.handler(args)
    except StaffPlannerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except Exception:  # noqa: BLE001
        logger.exception("Command %s failed", args.command)
        print("error: the command failed, see the log for details", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
