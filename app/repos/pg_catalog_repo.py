"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow, LessonRow
from app.models.course import Course, Lesson


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return None if row is None else _row_to_course(row)

    async def get_course_by_slug(self, slug: str) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_course(row)

    async def list_courses(self, *, published_only: bool) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.title)
        if published_only:
            stmt = stmt.where(CourseRow.is_published.is_(True))
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def add_course(self, course: Course) -> None:
        row = CourseRow(
            id=course.id,
            slug=course.slug,
            title=course.title,
            description=course.description,
            level=course.level,
            is_published=course.is_published,
            lesson_count=course.lesson_count,
            created_at=course.created_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("slug already exists") from None

    async def save_course(self, course: Course) -> None:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course.id)
            .values(
                slug=course.slug,
                title=course.title,
                description=course.description,
                level=course.level,
                is_published=course.is_published,
                lesson_count=course.lesson_count,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("course not found")

    async def delete_course(self, course_id: UUID) -> None:
        await self._session.execute(delete(CourseRow).where(CourseRow.id == course_id))

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return None if row is None else _row_to_lesson(row)

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.course_id == course_id)
            .order_by(LessonRow.order)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def add_lesson(self, lesson: Lesson) -> None:
        row = LessonRow(
            id=lesson.id,
            course_id=lesson.course_id,
            title=lesson.title,
            order=lesson.order,
            duration=lesson.duration,
            is_published=lesson.is_published,
            is_locked=lesson.is_locked,
            prerequisite_id=lesson.prerequisite_id,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("lesson order already taken") from None

    async def save_lesson(self, lesson: Lesson) -> None:
        stmt = (
            update(LessonRow)
            .where(LessonRow.id == lesson.id)
            .values(
                title=lesson.title,
                order=lesson.order,
                duration=lesson.duration,
                is_published=lesson.is_published,
                is_locked=lesson.is_locked,
                prerequisite_id=lesson.prerequisite_id,
            )
        )
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(stmt)
        except IntegrityError:
            raise ValueError("lesson order already taken") from None
        if result.rowcount == 0:
            raise KeyError("lesson not found")

    async def delete_lesson(self, lesson_id: UUID) -> None:
        await self._session.execute(delete(LessonRow).where(LessonRow.id == lesson_id))

    async def set_lesson_count(self, course_id: UUID, lesson_count: int) -> None:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(lesson_count=lesson_count)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("course not found")

    @asynccontextmanager
    async def serialized(self, course_id: UUID) -> AsyncIterator[None]:
        # Held until the transaction ends, like PgEnrollmentRepo.serialized.
        stmt = select(CourseRow.id).where(CourseRow.id == course_id).with_for_update()
        await self._session.execute(stmt)
        yield


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        description=row.description,
        level=row.level,
        is_published=row.is_published,
        lesson_count=row.lesson_count,
        created_at=row.created_at,
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        order=row.order,
        duration=row.duration,
        is_published=row.is_published,
        is_locked=row.is_locked,
        prerequisite_id=row.prerequisite_id,
    )
