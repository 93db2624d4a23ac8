"""Read-only view of courses and lessons for the progress ledger."""

from __future__ import annotations

from uuid import UUID

from app.models.course import Course, Lesson
from app.repos.catalog_repo import CatalogRepo
from app.services.errors import NotFound


class LessonCatalog:
    def __init__(self, repo: CatalogRepo) -> None:
        self._repo = repo

    async def get_course(self, course_id: UUID) -> Course:
        course = await self._repo.get_course(course_id)
        if course is None:
            raise NotFound(f"course {course_id} not found")
        return course

    async def get_lesson(self, lesson_id: UUID) -> Lesson:
        lesson = await self._repo.get_lesson(lesson_id)
        if lesson is None:
            raise NotFound(f"lesson {lesson_id} not found")
        return lesson

    async def get_course_lessons(self, course_id: UUID) -> list[Lesson]:
        """Lessons of a course ordered by `order`; a new list on every call."""
        await self.get_course(course_id)
        return list(await self._repo.list_lessons(course_id))

    async def list_courses(self, *, published_only: bool = True) -> list[Course]:
        return await self._repo.list_courses(published_only=published_only)
