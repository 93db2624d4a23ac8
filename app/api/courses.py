"""Course catalog and enrollment endpoints.

  GET  /v1/courses                      published courses
  GET  /v1/courses/{course_id}          one published course
  GET  /v1/courses/{course_id}/lessons  published lessons, in order
  POST /v1/courses/{course_id}/enroll   -> 201 Enrollment
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.api.dependencies import get_ledger, raise_http, require_user
from app.models.course import Course, Lesson
from app.models.enrollment import Enrollment
from app.models.principal import Principal
from app.services.cache import cache_service, summary_key
from app.services.errors import LedgerError, NotFound
from app.services.progress_ledger import ProgressLedger

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseOut(BaseModel):
    id: UUID
    slug: str
    title: str
    description: str | None
    level: str
    lesson_count: int

    @classmethod
    def from_course(cls, course: Course) -> CourseOut:
        return cls(
            id=course.id,
            slug=course.slug,
            title=course.title,
            description=course.description,
            level=course.level,
            lesson_count=course.lesson_count,
        )


class LessonOut(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    order: int
    duration: int | None
    is_locked: bool
    prerequisite_id: UUID | None

    @classmethod
    def from_lesson(cls, lesson: Lesson) -> LessonOut:
        return cls(
            id=lesson.id,
            course_id=lesson.course_id,
            title=lesson.title,
            order=lesson.order,
            duration=lesson.duration,
            is_locked=lesson.is_locked,
            prerequisite_id=lesson.prerequisite_id,
        )


class EnrollmentOut(BaseModel):
    user_id: str
    course_id: UUID
    status: str
    progress: int
    completed_lessons: int
    total_lessons: int
    enrolled_at: int
    completed_at: int | None
    last_activity_at: int | None

    @classmethod
    def from_enrollment(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            user_id=e.user_id,
            course_id=e.course_id,
            status=e.status,
            progress=e.progress,
            completed_lessons=e.completed_lessons,
            total_lessons=e.total_lessons,
            enrolled_at=e.enrolled_at,
            completed_at=e.completed_at,
            last_activity_at=e.last_activity_at,
        )


async def _published_course(ledger: ProgressLedger, course_id: UUID) -> Course:
    course = await ledger.catalog.get_course(course_id)
    if not course.is_published:
        raise NotFound(f"course {course_id} not found")
    return course


@router.get("", response_model=list[CourseOut])
async def list_courses(
    _principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> list[CourseOut]:
    courses = await ledger.catalog.list_courses(published_only=True)
    return [CourseOut.from_course(c) for c in courses]


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: UUID,
    _principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> CourseOut:
    try:
        course = await _published_course(ledger, course_id)
    except LedgerError as e:
        raise_http(e)
    return CourseOut.from_course(course)


@router.get("/{course_id}/lessons", response_model=list[LessonOut])
async def list_course_lessons(
    course_id: UUID,
    _principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> list[LessonOut]:
    try:
        await _published_course(ledger, course_id)
        lessons = await ledger.catalog.get_course_lessons(course_id)
    except LedgerError as e:
        raise_http(e)
    return [LessonOut.from_lesson(le) for le in lessons if le.is_published]


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> EnrollmentOut:
    try:
        enrollment = await ledger.enroll(principal.user_id, course_id)
    except LedgerError as e:
        raise_http(e)
    await cache_service.delete(summary_key(principal.user_id))
    return EnrollmentOut.from_enrollment(enrollment)
