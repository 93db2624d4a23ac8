"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import EnrollmentRow
from app.models.enrollment import Enrollment


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, course_id: UUID) -> Enrollment | None:
        row = await self._session.get(EnrollmentRow, (user_id, course_id))
        return None if row is None else _row_to_enrollment(row)

    async def add(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            enrolled_at=enrollment.enrolled_at,
            completed_lessons=enrollment.completed_lessons,
            total_lessons=enrollment.total_lessons,
            completed_at=enrollment.completed_at,
            last_activity_at=enrollment.last_activity_at,
        )
        # Savepoint so a duplicate-key race does not poison the outer transaction.
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("already enrolled") from None

    async def save(self, enrollment: Enrollment) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.user_id == enrollment.user_id,
                EnrollmentRow.course_id == enrollment.course_id,
            )
            .values(
                completed_lessons=enrollment.completed_lessons,
                total_lessons=enrollment.total_lessons,
                completed_at=enrollment.completed_at,
                last_activity_at=enrollment.last_activity_at,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("enrollment not found")

    async def list_for_user(self, user_id: str) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def list_all(self) -> list[Enrollment]:
        stmt = select(EnrollmentRow).order_by(EnrollmentRow.enrolled_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def count_for_course(self, course_id: UUID) -> int:
        stmt = select(func.count()).where(EnrollmentRow.course_id == course_id)
        return int((await self._session.execute(stmt)).scalar_one())

    @asynccontextmanager
    async def serialized(self, user_id: str, course_id: UUID) -> AsyncIterator[None]:
        # Row lock lives until the transaction ends (the ledger's commit, or
        # the rollback in app.db.engine.session_scope), not until this block
        # exits.
        stmt = (
            select(EnrollmentRow.user_id)
            .where(
                EnrollmentRow.user_id == user_id,
                EnrollmentRow.course_id == course_id,
            )
            .with_for_update()
        )
        await self._session.execute(stmt)
        yield


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        completed_lessons=row.completed_lessons,
        total_lessons=row.total_lessons,
        completed_at=row.completed_at,
        last_activity_at=row.last_activity_at,
    )
