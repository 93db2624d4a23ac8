from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.course import Course, Lesson
from app.repos.keyed_lock import KeyedLocks


class CatalogRepo(Protocol):
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def get_course_by_slug(self, slug: str) -> Course | None: ...
    async def list_courses(self, *, published_only: bool) -> list[Course]: ...
    async def add_course(self, course: Course) -> None: ...
    async def save_course(self, course: Course) -> None: ...
    async def delete_course(self, course_id: UUID) -> None: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def list_lessons(self, course_id: UUID) -> list[Lesson]: ...
    async def add_lesson(self, lesson: Lesson) -> None: ...
    async def save_lesson(self, lesson: Lesson) -> None: ...
    async def delete_lesson(self, lesson_id: UUID) -> None: ...
    async def set_lesson_count(self, course_id: UUID, lesson_count: int) -> None: ...

    def serialized(self, course_id: UUID) -> AbstractAsyncContextManager[None]:
        """Hold the per-course authoring lock for the enclosed block."""
        ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._lessons: dict[UUID, Lesson] = {}
        self._locks = KeyedLocks()

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def get_course_by_slug(self, slug: str) -> Course | None:
        return next((c for c in self._courses.values() if c.slug == slug), None)

    async def list_courses(self, *, published_only: bool) -> list[Course]:
        courses = [
            c for c in self._courses.values() if c.is_published or not published_only
        ]
        return sorted(courses, key=lambda c: c.title)

    async def add_course(self, course: Course) -> None:
        if any(c.slug == course.slug for c in self._courses.values()):
            raise ValueError("slug already exists")
        self._courses[course.id] = course

    async def save_course(self, course: Course) -> None:
        if course.id not in self._courses:
            raise KeyError("course not found")
        self._courses[course.id] = course

    async def delete_course(self, course_id: UUID) -> None:
        self._courses.pop(course_id, None)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        lessons = [le for le in self._lessons.values() if le.course_id == course_id]
        return sorted(lessons, key=lambda le: le.order)

    async def add_lesson(self, lesson: Lesson) -> None:
        if lesson.course_id not in self._courses:
            raise KeyError("course not found")
        if any(
            le.course_id == lesson.course_id and le.order == lesson.order
            for le in self._lessons.values()
        ):
            raise ValueError("lesson order already taken")
        self._lessons[lesson.id] = lesson

    async def save_lesson(self, lesson: Lesson) -> None:
        if lesson.id not in self._lessons:
            raise KeyError("lesson not found")
        if any(
            le.course_id == lesson.course_id
            and le.order == lesson.order
            and le.id != lesson.id
            for le in self._lessons.values()
        ):
            raise ValueError("lesson order already taken")
        self._lessons[lesson.id] = lesson

    async def delete_lesson(self, lesson_id: UUID) -> None:
        self._lessons.pop(lesson_id, None)

    async def set_lesson_count(self, course_id: UUID, lesson_count: int) -> None:
        course = self._courses.get(course_id)
        if course is None:
            raise KeyError("course not found")
        self._courses[course_id] = replace(course, lesson_count=lesson_count)

    def serialized(self, course_id: UUID) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(course_id)
