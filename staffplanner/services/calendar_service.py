from __future__ import annotations

import logging
from datetime import timedelta

from staffplanner.config import SETTINGS
from staffplanner.domain.calendar import project_calendar
from staffplanner.domain.entities import CalendarEvent
from staffplanner.domain.filters import DateRange, ViewerContext
from staffplanner.domain.parsing import as_time
from staffplanner.infra.people_repository import DirectoryRepository, LeaveRepository
from staffplanner.infra.repository import OverlayRepository, TaskRepository

logger = logging.getLogger(__name__)


class CalendarService:
    """Fetches one range worth of rows and hands them to the projector."""

    def __init__(
        self,
        tasks: TaskRepository,
        overlays: OverlayRepository,
        leaves: LeaveRepository,
        directory: DirectoryRepository | None = None,
    ) -> None:
        self._tasks = tasks
        self._overlays = overlays
        self._leaves = leaves
        self._directory = directory

    def viewer_for(self, user_id: str | None) -> ViewerContext:
        if user_id is None or self._directory is None:
            return ViewerContext(user_id=user_id)
        return self._directory.viewer_context(user_id)

    def calendar(self, date_range: DateRange, viewer: ViewerContext) -> list[CalendarEvent]:
        tasks = self._tasks.list_tasks_in_range(date_range.start, date_range.end)
        recurring = self._tasks.list_recurring_definitions(date_range.end)
        overlays = self._overlays.list_overlays(date_range.start, date_range.end)
        leaves = self._leaves.list_approved_overlapping(
            date_range.start, date_range.end, viewer.user_id
        )
        names = self._directory.display_names() if self._directory else {}

        events = project_calendar(
            tasks,
            recurring,
            overlays,
            leaves,
            viewer,
            date_range,
            max_occurrences=SETTINGS.max_occurrences,
            default_start=as_time(SETTINGS.default_start_time, "default start time"),
            duration=timedelta(minutes=SETTINGS.default_duration_minutes),
            names=names,
        )
        logger.debug(
            "Projected %d event(s) for %s..%s (viewer %s)",
            len(events),
            date_range.start,
            date_range.end,
            viewer.user_id or "admin",
        )
        return events
