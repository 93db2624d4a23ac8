"""Progress ledger against a live PostgreSQL.

The in-memory repos stand in for the database everywhere else; these
tests exercise the real merge statement, the enrollment row lock and the
savepoint-to-ValueError mapping.

Prerequisites:
  1. Start a database:
       docker run --rm -p 5432:5432 -e POSTGRES_PASSWORD=pw postgres:16
  2. Run only these tests:
       TEST_DATABASE_URL=postgresql+asyncpg://postgres:pw@localhost/postgres \
         pytest -m postgres -v

Tables are created if missing; every test removes the rows it wrote.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import replace
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.db import tables
from app.db.engine import Base
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_progress_repo import PgProgressRepo
from app.services.catalog_authoring import CatalogAuthoring
from app.services.errors import AlreadyEnrolled, InvalidInput, SlugTaken
from app.services.progress_ledger import ProgressLedger

DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL is not set"),
]

USER = "pg-learner"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ledger(session: AsyncSession) -> ProgressLedger:
    return ProgressLedger(
        PgCatalogRepo(session),
        PgProgressRepo(session),
        PgEnrollmentRepo(session),
        commit=session.commit,
    )


def _authoring(session: AsyncSession) -> CatalogAuthoring:
    return CatalogAuthoring(
        PgCatalogRepo(session),
        PgProgressRepo(session),
        PgEnrollmentRepo(session),
        commit=session.commit,
    )


async def _seed(
    factory: async_sessionmaker[AsyncSession], slug: str, lessons: int
) -> tuple[UUID, list[UUID]]:
    async with factory() as session:
        authoring = _authoring(session)
        course = await authoring.create_course(
            slug=f"{slug}-{uuid4().hex[:8]}", title=slug, is_published=True
        )
        ids = []
        for order in range(1, lessons + 1):
            lesson = await authoring.add_lesson(
                course.id,
                title=f"{slug} {order}",
                order=order,
                duration=600,
                is_published=True,
            )
            ids.append(lesson.id)
    return course.id, ids


async def _cleanup(factory: async_sessionmaker[AsyncSession], course_id: UUID) -> None:
    async with factory() as session:
        progress = tables.LessonProgressRow
        await session.execute(delete(progress).where(progress.course_id == course_id))
        enrollment = tables.EnrollmentRow
        await session.execute(
            delete(enrollment).where(enrollment.course_id == course_id)
        )
        lesson = tables.LessonRow
        await session.execute(
            update(lesson)
            .where(lesson.course_id == course_id)
            .values(prerequisite_id=None)
        )
        await session.execute(delete(lesson).where(lesson.course_id == course_id))
        course = tables.CourseRow
        await session.execute(delete(course).where(course.id == course_id))
        await session.commit()


def _run(
    body: Callable[[async_sessionmaker[AsyncSession]], Awaitable[None]],
) -> None:
    """Run `body` with a fresh engine bound to this event loop."""

    async def _main() -> None:
        assert DATABASE_URL is not None
        engine: AsyncEngine = create_async_engine(DATABASE_URL, poolclass=NullPool)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, expire_on_commit=False)
            await body(factory)
        finally:
            await engine.dispose()

    asyncio.run(_main())


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_concurrent_reports_keep_the_larger_watch_time() -> None:
    async def body(factory: async_sessionmaker[AsyncSession]) -> None:
        course_id, lesson_ids = await _seed(factory, "pg-watch-time", 2)
        try:
            async with factory() as session:
                await _ledger(session).enroll(USER, course_id)

            async def report(watch_time: int, completed: bool) -> None:
                async with factory() as session:
                    await _ledger(session).record_progress(
                        USER,
                        lesson_ids[0],
                        watch_time=watch_time,
                        last_position=watch_time,
                        is_completed=completed,
                    )

            await asyncio.gather(report(30, True), report(45, False))

            async with factory() as session:
                ledger = _ledger(session)
                record = await ledger.get_record(USER, lesson_ids[0])
                enrollment = await ledger.get_enrollment(USER, course_id)
            assert record is not None
            assert record.watch_time == 45
            assert record.is_completed is True
            assert record.completed_at is not None
            assert (enrollment.completed_lessons, enrollment.total_lessons) == (1, 2)
            assert enrollment.progress == 50
        finally:
            await _cleanup(factory, course_id)

    _run(body)


def test_concurrent_double_enroll_creates_one_enrollment() -> None:
    async def body(factory: async_sessionmaker[AsyncSession]) -> None:
        course_id, _ = await _seed(factory, "pg-double-enroll", 1)
        try:

            async def enroll() -> None:
                async with factory() as session:
                    await _ledger(session).enroll(USER, course_id)

            results = await asyncio.gather(enroll(), enroll(), return_exceptions=True)
            errors = [r for r in results if isinstance(r, BaseException)]
            assert len(errors) == 1
            assert isinstance(errors[0], AlreadyEnrolled)

            async with factory() as session:
                count = await PgEnrollmentRepo(session).count_for_course(course_id)
            assert count == 1
        finally:
            await _cleanup(factory, course_id)

    _run(body)


def test_duplicate_order_and_slug_map_to_domain_errors() -> None:
    async def body(factory: async_sessionmaker[AsyncSession]) -> None:
        course_id, lesson_ids = await _seed(factory, "pg-savepoints", 2)
        try:
            async with factory() as session:
                repo = PgCatalogRepo(session)
                second = await repo.get_lesson(lesson_ids[1])
                assert second is not None
                # Skip the authoring pre-check to reach the unique constraint.
                with pytest.raises(ValueError):
                    await repo.save_lesson(replace(second, order=1))
                # The savepoint kept the outer transaction usable.
                assert await repo.get_lesson(lesson_ids[0]) is not None

            async with factory() as session:
                authoring = _authoring(session)
                course = await PgCatalogRepo(session).get_course(course_id)
                assert course is not None
                with pytest.raises(SlugTaken):
                    await authoring.create_course(slug=course.slug, title="again")
            async with factory() as session:
                with pytest.raises(InvalidInput):
                    await _authoring(session).update_lesson(
                        lesson_ids[1], {"order": 1}
                    )
        finally:
            await _cleanup(factory, course_id)

    _run(body)


def test_timestamps_past_2038_are_stored() -> None:
    after_2038 = 2**31 + 86_400

    async def body(factory: async_sessionmaker[AsyncSession]) -> None:
        course_id, lesson_ids = await _seed(factory, "pg-bigint", 1)
        try:
            async with factory() as session:
                ledger = _ledger(session)
                await ledger.enroll(USER, course_id, now=after_2038)
                await ledger.record_progress(
                    USER,
                    lesson_ids[0],
                    watch_time=10,
                    last_position=10,
                    is_completed=True,
                    occurred_at=after_2038 + 5,
                )
            async with factory() as session:
                enrollment = await _ledger(session).get_enrollment(USER, course_id)
            assert enrollment.enrolled_at == after_2038
            assert enrollment.completed_at == after_2038 + 5
        finally:
            await _cleanup(factory, course_id)

    _run(body)
