"""Progress ledger: lesson progress records and derived enrollment progress.

Write path for one progress report:

  record_progress(user, lesson, ...)
    -> validate input                         (InvalidInput)
    -> resolve lesson via the catalog         (UnknownLesson)
    -> take the per-(user, course) lock
    -> require an enrollment                  (NotEnrolled)
    -> consistency gate on false→true         (ConsistencyViolation)
    -> atomic upsert of the progress record
    -> recompute the enrollment aggregate
    -> release the lock

Enrollment progress is never accepted from a caller.  It is recomputed
from the completed progress records of the course's currently published
lessons, and `completed_at` is set once, the first time every published
lesson is complete.
"""

from __future__ import annotations

import datetime
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from uuid import UUID

from app.core.metrics import (
    ENROLLMENT_COMPLETIONS,
    GATE_DENIALS,
    PROGRESS_EVENTS,
    RECOMPUTE_DURATION,
)
from app.models.course import Lesson
from app.models.enrollment import Enrollment
from app.models.progress import GateDecision, ProgressRecord, ProgressReport
from app.repos.catalog_repo import CatalogRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.progress_repo import ProgressRepo
from app.services.errors import (
    AlreadyEnrolled,
    ConsistencyViolation,
    InvalidInput,
    NotEnrolled,
    NotFound,
    UnknownLesson,
)
from app.services.lesson_catalog import LessonCatalog

logger = logging.getLogger(__name__)


def utc_now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


Commit = Callable[[], Awaitable[None]]


async def no_commit() -> None:
    return None


# Column ranges: seconds are INTEGER, timestamps BIGINT.
INT_MAX = 2**31 - 1
BIGINT_MAX = 2**63 - 1


def _require_seconds(name: str, value: object, *, limit: int = INT_MAX) -> int:
    # bool is an int subclass; True must not be read as one second.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer number of seconds")
    if value < 0:
        raise InvalidInput(f"{name} must not be negative (got {value})")
    if value > limit:
        raise InvalidInput(f"{name} must be at most {limit} (got {value})")
    return value


def _lesson_context(lesson: Lesson) -> dict[str, str]:
    return {"course_id": str(lesson.course_id), "lesson_id": str(lesson.id)}


class ProgressLedger:
    def __init__(
        self,
        catalog: CatalogRepo,
        progress: ProgressRepo,
        enrollments: EnrollmentRepo,
        *,
        clock=utc_now,
        commit: Commit = no_commit,
    ) -> None:
        """`commit` ends the unit of work after every successful write; a
        failure there propagates to the caller like any other error.
        """
        self._catalog = LessonCatalog(catalog)
        self._progress = progress
        self._enrollments = enrollments
        self._clock = clock
        self._commit = commit

    @property
    def catalog(self) -> LessonCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Progress store
    # ------------------------------------------------------------------

    async def record_progress(
        self,
        user_id: str,
        lesson_id: UUID,
        *,
        watch_time: int,
        last_position: int,
        is_completed: bool,
        occurred_at: int | None = None,
    ) -> ProgressRecord:
        """Merge one progress report into the learner's record for a lesson.

        watch_time keeps the maximum ever reported, completion is sticky,
        and last_position is clamped to the lesson duration.  Nothing is
        written when any check fails.
        """
        try:
            report = self._validate(
                watch_time, last_position, is_completed, occurred_at
            )
        except InvalidInput:
            PROGRESS_EVENTS.labels(result="invalid").inc()
            raise

        lesson = await self._catalog_lesson(lesson_id)
        if lesson.duration is not None and report.last_position > lesson.duration:
            logger.debug(
                "Clamping last_position=%d to duration=%d lesson=%s",
                report.last_position,
                lesson.duration,
                lesson.id,
            )
            report = replace(report, last_position=lesson.duration)

        async with self._enrollments.serialized(user_id, lesson.course_id):
            enrollment = await self._enrollments.get(user_id, lesson.course_id)
            if enrollment is None:
                PROGRESS_EVENTS.labels(result="not_enrolled").inc()
                logger.warning(
                    "Progress rejected: user=%s not enrolled in course=%s",
                    user_id,
                    lesson.course_id,
                )
                raise NotEnrolled(f"not enrolled in course {lesson.course_id}")

            existing = await self._progress.get(user_id, lesson.id)
            already_completed = existing is not None and existing.is_completed
            if report.is_completed and not already_completed:
                decision = await self._evaluate_gate(user_id, lesson)
                if not decision.allowed:
                    PROGRESS_EVENTS.labels(result="gate_denied").inc()
                    GATE_DENIALS.inc()
                    logger.warning(
                        "Completion denied user=%s lesson=%s: %s",
                        user_id,
                        lesson.id,
                        decision.reason,
                        extra=_lesson_context(lesson),
                    )
                    raise ConsistencyViolation(decision.reason or "completion denied")

            record = await self._progress.upsert(user_id, lesson, report)
            await self._aggregate(enrollment, now=report.occurred_at, activity=True)
            await self._commit()

        PROGRESS_EVENTS.labels(result="recorded").inc()
        logger.info(
            "Progress recorded user=%s lesson=%s completed=%s watch_time=%d",
            user_id,
            lesson.id,
            record.is_completed,
            record.watch_time,
            extra=_lesson_context(lesson),
        )
        return record

    async def get_record(self, user_id: str, lesson_id: UUID) -> ProgressRecord | None:
        return await self._progress.get(user_id, lesson_id)

    async def get_completed_lesson_ids(
        self, user_id: str, course_id: UUID
    ) -> set[UUID]:
        return await self._progress.completed_lesson_ids(user_id, course_id)

    async def list_course_records(
        self, user_id: str, course_id: UUID
    ) -> list[ProgressRecord]:
        return await self._progress.list_for_course(user_id, course_id)

    # ------------------------------------------------------------------
    # Consistency gate
    # ------------------------------------------------------------------

    async def can_complete(self, user_id: str, lesson_id: UUID) -> GateDecision:
        lesson = await self._catalog_lesson(lesson_id)
        return await self._evaluate_gate(user_id, lesson)

    async def _evaluate_gate(self, user_id: str, lesson: Lesson) -> GateDecision:
        # Walks the prerequisite chain for as long as each link is gated.
        # Authoring rejects cycles; `seen` only guarantees termination on
        # data written before that check existed.
        seen: set[UUID] = {lesson.id}
        current = lesson
        while current.is_gated:
            prerequisite_id = current.prerequisite_id
            if prerequisite_id is None:
                break
            record = await self._progress.get(user_id, prerequisite_id)
            if record is None or not record.is_completed:
                return GateDecision.deny(
                    f"prerequisite lesson {prerequisite_id} is not completed"
                )
            if prerequisite_id in seen:
                break
            seen.add(prerequisite_id)
            prerequisite = await self._catalog_lesson(prerequisite_id)
            current = prerequisite
        return GateDecision.allow()

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    async def enroll(
        self, user_id: str, course_id: UUID, *, now: int | None = None
    ) -> Enrollment:
        course = await self._catalog.get_course(course_id)
        if not course.is_published:
            raise NotFound(f"course {course_id} not found")

        enrolled_at = now if now is not None else self._clock()
        async with self._enrollments.serialized(user_id, course_id):
            if await self._enrollments.get(user_id, course_id) is not None:
                raise AlreadyEnrolled(f"already enrolled in course {course_id}")
            enrollment = Enrollment.new(
                user_id=user_id, course_id=course_id, enrolled_at=enrolled_at
            )
            try:
                await self._enrollments.add(enrollment)
            except ValueError:
                raise AlreadyEnrolled(
                    f"already enrolled in course {course_id}"
                ) from None
            enrollment = await self._aggregate(enrollment, now=enrolled_at)
            await self._commit()

        logger.info("Enrolled user=%s course=%s", user_id, course_id)
        return enrollment

    async def get_enrollment(self, user_id: str, course_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get(user_id, course_id)
        if enrollment is None:
            raise NotEnrolled(f"not enrolled in course {course_id}")
        return enrollment

    async def list_enrollments(self, user_id: str) -> list[Enrollment]:
        return await self._enrollments.list_for_user(user_id)

    # ------------------------------------------------------------------
    # Enrollment aggregator
    # ------------------------------------------------------------------

    async def recompute(
        self, user_id: str, course_id: UUID, *, now: int | None = None
    ) -> Enrollment:
        """Rederive the enrollment aggregate from progress records.

        Idempotent: with no progress change in between, a second call
        writes nothing and returns an identical Enrollment.
        """
        await self._catalog.get_course(course_id)
        async with self._enrollments.serialized(user_id, course_id):
            enrollment = await self.get_enrollment(user_id, course_id)
            enrollment = await self._aggregate(
                enrollment, now=now if now is not None else self._clock()
            )
            await self._commit()
        return enrollment

    async def _aggregate(
        self, enrollment: Enrollment, *, now: int, activity: bool = False
    ) -> Enrollment:
        # Caller holds the per-(user, course) lock.
        started = time.perf_counter()
        course = await self._catalog.get_course(enrollment.course_id)
        lessons = await self._catalog.get_course_lessons(enrollment.course_id)
        published = {le.id for le in lessons if le.is_published}
        if course.lesson_count != len(published):
            logger.warning(
                "course=%s lesson_count=%d disagrees with %d published lessons",
                course.id,
                course.lesson_count,
                len(published),
            )

        completed = await self.get_completed_lesson_ids(
            enrollment.user_id, enrollment.course_id
        )
        done = len(completed & published)
        total = len(published)

        completed_at = enrollment.completed_at
        if completed_at is None and total > 0 and done == total:
            completed_at = now
            ENROLLMENT_COMPLETIONS.inc()
            logger.info(
                "Course completed user=%s course=%s",
                enrollment.user_id,
                enrollment.course_id,
            )

        last_activity_at = enrollment.last_activity_at
        if activity:
            last_activity_at = max(last_activity_at or now, now)

        updated = replace(
            enrollment,
            completed_lessons=done,
            total_lessons=total,
            completed_at=completed_at,
            last_activity_at=last_activity_at,
        )
        if updated != enrollment:
            await self._enrollments.save(updated)
        RECOMPUTE_DURATION.observe(time.perf_counter() - started)
        return updated

    # ------------------------------------------------------------------

    async def _catalog_lesson(self, lesson_id: UUID) -> Lesson:
        try:
            return await self._catalog.get_lesson(lesson_id)
        except NotFound:
            PROGRESS_EVENTS.labels(result="unknown_lesson").inc()
            raise UnknownLesson(f"lesson {lesson_id} not found") from None

    def _validate(
        self,
        watch_time: object,
        last_position: object,
        is_completed: object,
        occurred_at: object,
    ) -> ProgressReport:
        if not isinstance(is_completed, bool):
            raise InvalidInput("is_completed must be a boolean")
        if occurred_at is None:
            timestamp = self._clock()
        else:
            timestamp = _require_seconds(
                "occurred_at", occurred_at, limit=BIGINT_MAX
            )
        return ProgressReport(
            watch_time=_require_seconds("watch_time", watch_time),
            last_position=_require_seconds("last_position", last_position),
            is_completed=is_completed,
            occurred_at=timestamp,
        )
