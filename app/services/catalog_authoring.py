"""Admin-side course and lesson authoring.

Every mutation keeps two catalog invariants that the progress ledger
relies on:

- lesson `order` is a positive integer, unique within its course
- the prerequisite graph is acyclic and never crosses courses

and re-syncs `course.lesson_count` to the number of published lessons.
Lesson mutations run under the per-course authoring lock, so two admins
editing the same course cannot jointly break either invariant.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from uuid import UUID

from app.models.course import Course, Lesson
from app.repos.catalog_repo import CatalogRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.progress_repo import ProgressRepo
from app.services.errors import (
    CourseInUse,
    InvalidInput,
    InvalidPrerequisite,
    LessonInUse,
    SlugTaken,
)
from app.services.lesson_catalog import LessonCatalog
from app.services.progress_ledger import INT_MAX, Commit, no_commit, utc_now

logger = logging.getLogger(__name__)

LEVELS = frozenset({"beginner", "intermediate", "advanced"})

_COURSE_FIELDS = frozenset({"title", "description", "level", "is_published"})
_REQUIRED_COURSE_FIELDS = frozenset({"title", "level", "is_published"})
_LESSON_FIELDS = frozenset(
    {"title", "order", "duration", "is_published", "is_locked", "prerequisite_id"}
)
_REQUIRED_LESSON_FIELDS = frozenset({"title", "order", "is_published", "is_locked"})


def _require_text(name: str, value: str) -> str:
    value = value.strip()
    if not value:
        raise InvalidInput(f"{name} must be non-empty")
    return value


def _check_changes(
    kind: str,
    changes: Mapping[str, object],
    allowed: frozenset[str],
    required: frozenset[str],
) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidInput(f"unknown {kind} fields: {sorted(unknown)}")
    for name in required & set(changes):
        if changes[name] is None:
            raise InvalidInput(f"{name} cannot be null")


def _check_level(level: str) -> None:
    if level not in LEVELS:
        raise InvalidInput(f"level must be one of {sorted(LEVELS)} (got {level!r})")


def _check_order(order: int) -> None:
    if order < 1:
        raise InvalidInput(f"order must be positive (got {order})")
    if order > INT_MAX:
        raise InvalidInput(f"order must be at most {INT_MAX} (got {order})")


def _check_duration(duration: int | None) -> None:
    if duration is not None and duration < 0:
        raise InvalidInput(f"duration must not be negative (got {duration})")
    if duration is not None and duration > INT_MAX:
        raise InvalidInput(f"duration must be at most {INT_MAX} (got {duration})")


class CatalogAuthoring:
    def __init__(
        self,
        catalog: CatalogRepo,
        progress: ProgressRepo,
        enrollments: EnrollmentRepo,
        *,
        clock=utc_now,
        commit: Commit = no_commit,
    ) -> None:
        self._repo = catalog
        self._catalog = LessonCatalog(catalog)
        self._progress = progress
        self._enrollments = enrollments
        self._clock = clock
        self._commit = commit

    # --- reads ---

    async def list_courses(self) -> list[Course]:
        return await self._catalog.list_courses(published_only=False)

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        """Every lesson of the course, drafts included, ordered."""
        return await self._catalog.get_course_lessons(course_id)

    # --- courses ---

    async def create_course(
        self,
        *,
        slug: str,
        title: str,
        description: str | None = None,
        level: str = "beginner",
        is_published: bool = False,
    ) -> Course:
        slug = _require_text("slug", slug).lower()
        title = _require_text("title", title)
        _check_level(level)

        course = Course.new(
            slug=slug,
            title=title,
            description=description,
            level=level,
            is_published=is_published,
            created_at=self._clock(),
        )
        try:
            await self._repo.add_course(course)
        except ValueError:
            logger.warning("Rejected duplicate course slug=%s", slug)
            raise SlugTaken(f"course slug {slug!r} already exists") from None
        await self._commit()
        logger.info("Created course id=%s slug=%s", course.id, slug)
        return course

    async def update_course(
        self, course_id: UUID, changes: Mapping[str, object]
    ) -> Course:
        """Partial update of title, description, level and publish state.

        The slug is fixed at creation.
        """
        _check_changes("course", changes, _COURSE_FIELDS, _REQUIRED_COURSE_FIELDS)
        current = await self._catalog.get_course(course_id)
        course = replace(current, **changes)  # type: ignore[arg-type]
        course = replace(course, title=_require_text("title", course.title))
        _check_level(course.level)

        if course == current:
            return current
        await self._repo.save_course(course)
        await self._commit()
        logger.info("Updated course id=%s fields=%s", course_id, sorted(changes))
        return course

    async def delete_course(self, course_id: UUID) -> None:
        await self._catalog.get_course(course_id)
        async with self._repo.serialized(course_id):
            enrolled = await self._enrollments.count_for_course(course_id)
            if enrolled:
                logger.warning(
                    "Refused to delete course id=%s with %d enrollments",
                    course_id,
                    enrolled,
                )
                raise CourseInUse(f"course {course_id} has {enrolled} enrollments")
            lessons = await self._repo.list_lessons(course_id)
            if lessons:
                raise CourseInUse(
                    f"course {course_id} still has {len(lessons)} lessons"
                )
            await self._repo.delete_course(course_id)
            await self._commit()
        logger.info("Deleted course id=%s", course_id)

    # --- lessons ---

    async def add_lesson(
        self,
        course_id: UUID,
        *,
        title: str,
        order: int,
        duration: int | None = None,
        is_published: bool = False,
        is_locked: bool = False,
        prerequisite_id: UUID | None = None,
    ) -> Lesson:
        await self._catalog.get_course(course_id)
        _check_order(order)
        _check_duration(duration)
        lesson = Lesson.new(
            course_id=course_id,
            title=_require_text("title", title),
            order=order,
            duration=duration,
            is_published=is_published,
            is_locked=is_locked,
            prerequisite_id=prerequisite_id,
        )
        async with self._repo.serialized(course_id):
            siblings = await self._repo.list_lessons(course_id)
            self._check_order_free(lesson, siblings)
            self._check_prerequisite(lesson, siblings)

            try:
                await self._repo.add_lesson(lesson)
            except ValueError:
                raise InvalidInput(f"order {order} already used in course") from None
            await self._sync_lesson_count(course_id)
            await self._commit()
        logger.info(
            "Added lesson id=%s course=%s order=%d", lesson.id, course_id, order
        )
        return lesson

    async def update_lesson(
        self, lesson_id: UUID, changes: Mapping[str, object]
    ) -> Lesson:
        """Apply a partial update.

        Only keys present in `changes` are touched, so
        `{"prerequisite_id": None}` clears the prerequisite while an
        absent key leaves it as is.
        """
        _check_changes("lesson", changes, _LESSON_FIELDS, _REQUIRED_LESSON_FIELDS)

        course_id = (await self._catalog.get_lesson(lesson_id)).course_id
        async with self._repo.serialized(course_id):
            current = await self._catalog.get_lesson(lesson_id)
            lesson = replace(current, **changes)  # type: ignore[arg-type]
            lesson = replace(lesson, title=_require_text("title", lesson.title))
            _check_order(lesson.order)
            _check_duration(lesson.duration)

            siblings = await self._repo.list_lessons(course_id)
            if lesson.order != current.order:
                self._check_order_free(lesson, siblings)
            if lesson.prerequisite_id != current.prerequisite_id:
                self._check_prerequisite(lesson, siblings)

            if lesson == current:
                return current
            try:
                await self._repo.save_lesson(lesson)
            except ValueError:
                raise InvalidInput(
                    f"order {lesson.order} already used in course"
                ) from None
            if lesson.is_published != current.is_published:
                await self._sync_lesson_count(course_id)
            await self._commit()
        logger.info("Updated lesson id=%s fields=%s", lesson_id, sorted(changes))
        return lesson

    async def delete_lesson(self, lesson_id: UUID) -> None:
        course_id = (await self._catalog.get_lesson(lesson_id)).course_id
        async with self._repo.serialized(course_id):
            await self._catalog.get_lesson(lesson_id)
            in_use = await self._progress.count_for_lesson(lesson_id)
            if in_use:
                logger.warning(
                    "Refused to delete lesson id=%s with %d progress records",
                    lesson_id,
                    in_use,
                )
                raise LessonInUse(f"lesson {lesson_id} has {in_use} progress records")

            siblings = await self._repo.list_lessons(course_id)
            dependents = [le.id for le in siblings if le.prerequisite_id == lesson_id]
            if dependents:
                raise LessonInUse(
                    f"lesson {lesson_id} is the prerequisite of "
                    f"{len(dependents)} lessons"
                )

            await self._repo.delete_lesson(lesson_id)
            await self._sync_lesson_count(course_id)
            await self._commit()
        logger.info("Deleted lesson id=%s course=%s", lesson_id, course_id)

    # --- invariants ---

    @staticmethod
    def _check_order_free(lesson: Lesson, siblings: list[Lesson]) -> None:
        if any(s.order == lesson.order and s.id != lesson.id for s in siblings):
            raise InvalidInput(f"order {lesson.order} already used in course")

    @staticmethod
    def _check_prerequisite(lesson: Lesson, siblings: list[Lesson]) -> None:
        if lesson.prerequisite_id is None:
            return
        if lesson.prerequisite_id == lesson.id:
            raise InvalidPrerequisite("a lesson cannot be its own prerequisite")

        by_id = {s.id: s for s in siblings}
        by_id[lesson.id] = lesson
        if lesson.prerequisite_id not in by_id:
            # Either missing entirely or in another course.
            raise InvalidPrerequisite(
                f"prerequisite {lesson.prerequisite_id} is not a lesson of this course"
            )

        seen = {lesson.id}
        cursor = by_id[lesson.prerequisite_id]
        while cursor.prerequisite_id is not None:
            if cursor.prerequisite_id in seen:
                raise InvalidPrerequisite("prerequisite chain would form a cycle")
            seen.add(cursor.id)
            nxt = by_id.get(cursor.prerequisite_id)
            if nxt is None:
                break
            cursor = nxt

    async def _sync_lesson_count(self, course_id: UUID) -> None:
        lessons = await self._repo.list_lessons(course_id)
        count = sum(1 for le in lessons if le.is_published)
        await self._repo.set_lesson_count(course_id, count)
