from __future__ import annotations

from enum import IntEnum, StrEnum


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Frequency(StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class RepeatInterval(StrEnum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Weekday(IntEnum):
    """Python weekday numbering (Monday is 0)."""

    MO = 0
    TU = 1
    WE = 2
    TH = 3
    FR = 4
    SA = 5
    SU = 6


class AssignmentTarget(StrEnum):
    USER = "user"
    GROUP = "group"
    ALL = "all"
    ALL_ADMINS = "all_admins"


class LeaveType(StrEnum):
    VACATION = "vacation"
    PTO = "pto"
    SICK = "sick"
    HOLIDAY = "holiday"


class LeaveStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class EventType(StrEnum):
    TASK = "task"
    LEAVE = "leave"
