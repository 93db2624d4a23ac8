"""Errors raised by the progress ledger and catalog authoring.

All of these are recoverable, user-facing conditions; the API layer maps
each `code` to a 4xx response.  Persistence failures are not wrapped and
propagate as-is (500).
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "ledger_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFound(LedgerError):
    code = "not_found"


class UnknownLesson(LedgerError):
    code = "unknown_lesson"


class NotEnrolled(LedgerError):
    code = "not_enrolled"


class AlreadyEnrolled(LedgerError):
    code = "already_enrolled"


class ConsistencyViolation(LedgerError):
    code = "consistency_violation"


class InvalidInput(LedgerError):
    code = "invalid_input"


class InvalidPrerequisite(InvalidInput):
    """Prerequisite missing, in another course, self-referencing, or cyclic."""

    code = "invalid_prerequisite"


class LessonInUse(LedgerError):
    """A lesson with progress records cannot be deleted."""

    code = "lesson_in_use"


class SlugTaken(LedgerError):
    code = "slug_taken"


class CourseInUse(LedgerError):
    """A course with lessons or enrollments cannot be deleted."""

    code = "course_in_use"
