from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from math import floor
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A learner's relationship to a course, carrying derived completion.

    The percentage is never stored directly.  The aggregate is kept as the
    exact pair (completed_lessons, total_lessons) so repeated recomputation
    cannot drift; `progress` is only the rounded display value.
    """

    user_id: str
    course_id: UUID
    enrolled_at: int
    completed_lessons: int = 0
    total_lessons: int = 0
    completed_at: int | None = None
    last_activity_at: int | None = None

    @property
    def progress_exact(self) -> Fraction:
        return Fraction(100 * self.completed_lessons, max(1, self.total_lessons))

    @property
    def progress(self) -> int:
        """Percent complete, rounded half-up to an integer in 0..100."""
        return floor(self.progress_exact + Fraction(1, 2))

    @property
    def status(self) -> str:
        if self.completed_at is not None:
            return "completed"
        if self.completed_lessons > 0 or self.last_activity_at is not None:
            return "in_progress"
        return "not_started"

    @staticmethod
    def new(*, user_id: str, course_id: UUID, enrolled_at: int) -> Enrollment:
        return Enrollment(user_id=user_id, course_id=course_id, enrolled_at=enrolled_at)
