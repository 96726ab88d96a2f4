"""Exception hierarchy for scheduling operations.

Callers map these onto their own responses: ``ValidationError`` is a rejected
request with a one-sentence reason, ``NotFoundError`` a missing task or empty
batch, and ``StorageError`` a generic failure that never carries database
internals in its message.
"""
from __future__ import annotations


class StaffPlannerError(Exception):
    """Base class for all errors raised by staffplanner."""


class ValidationError(StaffPlannerError):
    """Input was rejected (empty weekday selection, bad dates, bad rule)."""


class NotFoundError(StaffPlannerError):
    """A task, or every member of a batch, could not be found."""


class StorageError(StaffPlannerError):
    """A write or read against the database failed and was rolled back."""
