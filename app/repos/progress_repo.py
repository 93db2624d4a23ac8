from __future__ import annotations

from collections import defaultdict
from typing import Protocol
from uuid import UUID

from app.models.course import Lesson
from app.models.progress import ProgressRecord, ProgressReport


class ProgressRepo(Protocol):
    async def get(self, user_id: str, lesson_id: UUID) -> ProgressRecord | None: ...

    async def upsert(
        self, user_id: str, lesson: Lesson, report: ProgressReport
    ) -> ProgressRecord:
        """Merge `report` into the (user_id, lesson.id) record in one atomic write."""
        ...

    async def completed_lesson_ids(
        self, user_id: str, course_id: UUID
    ) -> set[UUID]: ...
    async def list_for_course(
        self, user_id: str, course_id: UUID
    ) -> list[ProgressRecord]: ...
    async def count_for_lesson(self, lesson_id: UUID) -> int: ...
    async def watch_time_totals(self) -> dict[tuple[str, UUID], int]: ...


class InMemoryProgressRepo:
    """Dict-backed store.

    `upsert` has no await between reading and writing the record, so on a
    single event loop the merge is atomic without a lock.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, UUID], ProgressRecord] = {}

    async def get(self, user_id: str, lesson_id: UUID) -> ProgressRecord | None:
        return self._records.get((user_id, lesson_id))

    async def upsert(
        self, user_id: str, lesson: Lesson, report: ProgressReport
    ) -> ProgressRecord:
        key = (user_id, lesson.id)
        merged = report.merge_into(
            self._records.get(key),
            user_id=user_id,
            lesson_id=lesson.id,
            course_id=lesson.course_id,
        )
        self._records[key] = merged
        return merged

    async def completed_lesson_ids(self, user_id: str, course_id: UUID) -> set[UUID]:
        return {
            r.lesson_id
            for r in self._records.values()
            if r.user_id == user_id and r.course_id == course_id and r.is_completed
        }

    async def list_for_course(
        self, user_id: str, course_id: UUID
    ) -> list[ProgressRecord]:
        return [
            r
            for r in self._records.values()
            if r.user_id == user_id and r.course_id == course_id
        ]

    async def count_for_lesson(self, lesson_id: UUID) -> int:
        return sum(1 for r in self._records.values() if r.lesson_id == lesson_id)

    async def watch_time_totals(self) -> dict[tuple[str, UUID], int]:
        totals: dict[tuple[str, UUID], int] = defaultdict(int)
        for r in self._records.values():
            totals[(r.user_id, r.course_id)] += r.watch_time
        return dict(totals)
