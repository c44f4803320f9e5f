# vocab/exceptions.py
from __future__ import annotations


class SubmissionInvalid(ValueError):
    """A required field of a word submission is missing or blank."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is required.")


class PersistenceError(RuntimeError):
    """The store could not complete the unit of work; safe for the caller to retry."""


class SweepAborted(PersistenceError):
    def __init__(self, deleted: int, group: tuple | None, cause: Exception):
        self.deleted = deleted
        self.group = group
        super().__init__(
            f"duplicate sweep failed on group {group!r} after deleting {deleted} rows: {cause}"
            if group is not None
            else f"duplicate sweep failed while scanning: {cause}"
        )


class SweepAlreadyRunning(RuntimeError):
    pass
