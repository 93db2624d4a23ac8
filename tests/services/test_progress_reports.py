from __future__ import annotations

import asyncio

from app.models.course import Course, Lesson
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.repos.progress_repo import InMemoryProgressRepo
from app.services.progress_ledger import ProgressLedger
from app.services.progress_reports import ProgressReports


def _seed() -> tuple[ProgressLedger, ProgressReports, Course, list[Lesson]]:
    catalog = InMemoryCatalogRepo()
    progress = InMemoryProgressRepo()
    enrollments = InMemoryEnrollmentRepo()
    course = Course.new(slug="c", title="Course C", is_published=True)
    lessons = [
        Lesson.new(course_id=course.id, title=f"L{i}", order=i, is_published=True)
        for i in (1, 2, 3)
    ]

    async def _persist() -> None:
        await catalog.add_course(course)
        for lesson in lessons:
            await catalog.add_lesson(lesson)
        await catalog.set_lesson_count(course.id, len(lessons))

    asyncio.run(_persist())
    ledger = ProgressLedger(catalog, progress, enrollments, clock=lambda: 1_000)
    return ledger, ProgressReports(catalog, progress, enrollments), course, lessons


def test_empty_stats() -> None:
    _, reports, _, _ = _seed()
    stats = asyncio.run(reports.stats())
    assert stats.active_learners == 0
    assert stats.avg_progress == 0
    assert stats.completions == 0
    assert stats.total_study_time == 0


def test_overview_and_stats() -> None:
    ledger, reports, course, lessons = _seed()

    async def _activity() -> None:
        await ledger.enroll("alice", course.id)
        await ledger.enroll("bob", course.id)
        for lesson in lessons:
            await ledger.record_progress(
                "alice", lesson.id, watch_time=100, last_position=0, is_completed=True
            )
        await ledger.record_progress(
            "bob", lessons[0].id, watch_time=40, last_position=0, is_completed=False
        )

    asyncio.run(_activity())

    rows = {r.user_id: r for r in asyncio.run(reports.overview())}
    assert rows["alice"].progress == 100
    assert rows["alice"].watch_time == 300
    assert rows["alice"].status == "completed"
    assert rows["alice"].course_title == "Course C"
    assert rows["bob"].progress == 0
    assert rows["bob"].watch_time == 40
    assert rows["bob"].status == "in_progress"

    stats = asyncio.run(reports.stats())
    assert stats.active_learners == 2
    assert stats.avg_progress == 50
    assert stats.completions == 1
    assert stats.total_study_time == 340
