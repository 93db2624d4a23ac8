from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """One learner's engagement with one lesson, keyed by (user_id, lesson_id).

    Merge rules applied on every report:
      watch_time  : max of stored and reported (never decreases)
      is_completed: stored OR reported (sticky)
      completed_at: set once, on the false→true transition
    """

    user_id: str
    lesson_id: UUID
    course_id: UUID
    is_completed: bool = False
    watch_time: int = 0  # seconds
    last_position: int = 0  # seconds, within [0, lesson.duration]
    completed_at: int | None = None
    created_at: int | None = None
    updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class ProgressReport:
    """A validated progress event, before it is merged into a record."""

    watch_time: int
    last_position: int
    is_completed: bool
    occurred_at: int

    def merge_into(
        self,
        existing: ProgressRecord | None,
        *,
        user_id: str,
        lesson_id: UUID,
        course_id: UUID,
    ) -> ProgressRecord:
        """Return the record that results from applying this report."""
        if existing is None:
            return ProgressRecord(
                user_id=user_id,
                lesson_id=lesson_id,
                course_id=course_id,
                is_completed=self.is_completed,
                watch_time=self.watch_time,
                last_position=self.last_position,
                completed_at=self.occurred_at if self.is_completed else None,
                created_at=self.occurred_at,
                updated_at=self.occurred_at,
            )

        completed = existing.is_completed or self.is_completed
        completed_at = existing.completed_at
        if completed and completed_at is None:
            completed_at = self.occurred_at

        return ProgressRecord(
            user_id=existing.user_id,
            lesson_id=existing.lesson_id,
            course_id=existing.course_id,
            is_completed=completed,
            watch_time=max(existing.watch_time, self.watch_time),
            last_position=self.last_position,
            completed_at=completed_at,
            created_at=existing.created_at,
            updated_at=self.occurred_at,
        )


@dataclass(frozen=True, slots=True)
class GateDecision:
    allowed: bool
    reason: str | None = None

    @staticmethod
    def allow() -> GateDecision:
        return GateDecision(allowed=True)

    @staticmethod
    def deny(reason: str) -> GateDecision:
        return GateDecision(allowed=False, reason=reason)
