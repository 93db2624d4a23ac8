from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt

from app.api.dependencies import get_authoring, get_reports, raise_http, require_role
from app.models.course import Course, Lesson
from app.models.principal import Principal
from app.services.catalog_authoring import CatalogAuthoring
from app.services.errors import LedgerError
from app.services.progress_reports import ProgressReports

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

AdminPrincipal = Annotated[Principal, Depends(require_role("admin"))]


# --- schemas ---


class CourseCreateIn(BaseModel):
    slug: str
    title: str
    description: str | None = None
    level: str = "beginner"
    is_published: StrictBool = False


class CoursePatchIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    level: str | None = None
    is_published: StrictBool | None = None


class AdminCourseOut(BaseModel):
    id: UUID
    slug: str
    title: str
    description: str | None
    level: str
    is_published: bool
    lesson_count: int
    created_at: int | None

    @classmethod
    def from_course(cls, c: Course) -> AdminCourseOut:
        return cls(
            id=c.id,
            slug=c.slug,
            title=c.title,
            description=c.description,
            level=c.level,
            is_published=c.is_published,
            lesson_count=c.lesson_count,
            created_at=c.created_at,
        )


class LessonCreateIn(BaseModel):
    title: str
    order: StrictInt
    duration: StrictInt | None = None
    is_published: StrictBool = False
    is_locked: StrictBool = False
    prerequisite_id: UUID | None = None


class LessonPatchIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    order: StrictInt | None = None
    duration: StrictInt | None = None
    is_published: StrictBool | None = None
    is_locked: StrictBool | None = None
    prerequisite_id: UUID | None = None


class AdminLessonOut(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    order: int
    duration: int | None
    is_published: bool
    is_locked: bool
    prerequisite_id: UUID | None

    @classmethod
    def from_lesson(cls, le: Lesson) -> AdminLessonOut:
        return cls(
            id=le.id,
            course_id=le.course_id,
            title=le.title,
            order=le.order,
            duration=le.duration,
            is_published=le.is_published,
            is_locked=le.is_locked,
            prerequisite_id=le.prerequisite_id,
        )


class ProgressRowOut(BaseModel):
    user_id: str
    course_id: UUID
    course_title: str
    progress: int
    completed_lessons: int
    total_lessons: int
    watch_time: int
    status: str
    last_activity_at: int | None


class ProgressStatsOut(BaseModel):
    active_learners: int
    avg_progress: int
    completions: int
    total_study_time: int


# --- authoring ---


@router.get("/courses", response_model=list[AdminCourseOut])
async def list_courses(
    _principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> list[AdminCourseOut]:
    """All courses, drafts included."""
    return [AdminCourseOut.from_course(c) for c in await authoring.list_courses()]


@router.post(
    "/courses",
    response_model=AdminCourseOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_course(
    body: CourseCreateIn,
    principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> AdminCourseOut:
    try:
        course = await authoring.create_course(
            slug=body.slug,
            title=body.title,
            description=body.description,
            level=body.level,
            is_published=body.is_published,
        )
    except LedgerError as e:
        raise_http(e)
    logger.info("Course created by admin=%s id=%s", principal.user_id, course.id)
    return AdminCourseOut.from_course(course)


@router.patch("/courses/{course_id}", response_model=AdminCourseOut)
async def patch_course(
    course_id: UUID,
    body: CoursePatchIn,
    _principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> AdminCourseOut:
    changes = body.model_dump(exclude_unset=True)
    try:
        course = await authoring.update_course(course_id, changes)
    except LedgerError as e:
        raise_http(e)
    return AdminCourseOut.from_course(course)


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: UUID,
    principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> None:
    try:
        await authoring.delete_course(course_id)
    except LedgerError as e:
        raise_http(e)
    logger.info("Course deleted by admin=%s id=%s", principal.user_id, course_id)


@router.get("/courses/{course_id}/lessons", response_model=list[AdminLessonOut])
async def list_lessons(
    course_id: UUID,
    _principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> list[AdminLessonOut]:
    """Every lesson of the course, unpublished ones included."""
    try:
        lessons = await authoring.list_lessons(course_id)
    except LedgerError as e:
        raise_http(e)
    return [AdminLessonOut.from_lesson(le) for le in lessons]


@router.post(
    "/courses/{course_id}/lessons",
    response_model=AdminLessonOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_lesson(
    course_id: UUID,
    body: LessonCreateIn,
    _principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> AdminLessonOut:
    try:
        lesson = await authoring.add_lesson(
            course_id,
            title=body.title,
            order=body.order,
            duration=body.duration,
            is_published=body.is_published,
            is_locked=body.is_locked,
            prerequisite_id=body.prerequisite_id,
        )
    except LedgerError as e:
        raise_http(e)
    return AdminLessonOut.from_lesson(lesson)


@router.patch("/lessons/{lesson_id}", response_model=AdminLessonOut)
async def patch_lesson(
    lesson_id: UUID,
    body: LessonPatchIn,
    _principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> AdminLessonOut:
    # exclude_unset: an explicit null clears a field, an omitted key keeps it.
    changes = body.model_dump(exclude_unset=True)
    try:
        lesson = await authoring.update_lesson(lesson_id, changes)
    except LedgerError as e:
        raise_http(e)
    return AdminLessonOut.from_lesson(lesson)


@router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: UUID,
    principal: AdminPrincipal,
    authoring: Annotated[CatalogAuthoring, Depends(get_authoring)],
) -> None:
    try:
        await authoring.delete_lesson(lesson_id)
    except LedgerError as e:
        raise_http(e)
    logger.info("Lesson deleted by admin=%s id=%s", principal.user_id, lesson_id)


# --- reporting ---


@router.get("/progress", response_model=list[ProgressRowOut])
async def progress_overview(
    principal: AdminPrincipal,
    reports: Annotated[ProgressReports, Depends(get_reports)],
) -> list[ProgressRowOut]:
    logger.info("Progress overview requested by admin=%s", principal.user_id)
    rows = await reports.overview()
    return [
        ProgressRowOut(
            user_id=r.user_id,
            course_id=r.course_id,
            course_title=r.course_title,
            progress=r.progress,
            completed_lessons=r.completed_lessons,
            total_lessons=r.total_lessons,
            watch_time=r.watch_time,
            status=r.status,
            last_activity_at=r.last_activity_at,
        )
        for r in rows
    ]


@router.get("/progress-stats", response_model=ProgressStatsOut)
async def progress_stats(
    _principal: AdminPrincipal,
    reports: Annotated[ProgressReports, Depends(get_reports)],
) -> ProgressStatsOut:
    s = await reports.stats()
    return ProgressStatsOut(
        active_learners=s.active_learners,
        avg_progress=s.avg_progress,
        completions=s.completions,
        total_study_time=s.total_study_time,
    )
