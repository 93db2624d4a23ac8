"""Read-only admin reporting over all enrollments."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from math import floor
from uuid import UUID

from app.repos.catalog_repo import CatalogRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.progress_repo import ProgressRepo


@dataclass(frozen=True, slots=True)
class ProgressOverviewRow:
    user_id: str
    course_id: UUID
    course_title: str
    progress: int
    completed_lessons: int
    total_lessons: int
    watch_time: int
    status: str
    last_activity_at: int | None


@dataclass(frozen=True, slots=True)
class ProgressStats:
    active_learners: int
    avg_progress: int
    completions: int
    total_study_time: int


class ProgressReports:
    def __init__(
        self,
        catalog: CatalogRepo,
        progress: ProgressRepo,
        enrollments: EnrollmentRepo,
    ) -> None:
        self._catalog = catalog
        self._progress = progress
        self._enrollments = enrollments

    async def overview(self) -> list[ProgressOverviewRow]:
        enrollments = await self._enrollments.list_all()
        watch_totals = await self._progress.watch_time_totals()
        titles: dict[UUID, str] = {}
        rows = []
        for e in enrollments:
            if e.course_id not in titles:
                course = await self._catalog.get_course(e.course_id)
                titles[e.course_id] = course.title if course is not None else ""
            rows.append(
                ProgressOverviewRow(
                    user_id=e.user_id,
                    course_id=e.course_id,
                    course_title=titles[e.course_id],
                    progress=e.progress,
                    completed_lessons=e.completed_lessons,
                    total_lessons=e.total_lessons,
                    watch_time=watch_totals.get((e.user_id, e.course_id), 0),
                    status=e.status,
                    last_activity_at=e.last_activity_at,
                )
            )
        return rows

    async def stats(self) -> ProgressStats:
        enrollments = await self._enrollments.list_all()
        watch_totals = await self._progress.watch_time_totals()
        # Averaged over exact fractions, rounded half-up once at the end.
        avg = Fraction(0)
        if enrollments:
            avg = sum((e.progress_exact for e in enrollments), Fraction(0)) / len(
                enrollments
            )
        return ProgressStats(
            active_learners=len({e.user_id for e in enrollments}),
            avg_progress=floor(avg + Fraction(1, 2)),
            completions=sum(1 for e in enrollments if e.completed_at is not None),
            total_study_time=sum(watch_totals.values()),
        )
