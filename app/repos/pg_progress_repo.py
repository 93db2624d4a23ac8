"""PostgreSQL implementation of ProgressRepo.

The merge rule (max watch time, sticky completion, completed_at set once)
is a single INSERT ... ON CONFLICT DO UPDATE, so two concurrent reports
for the same (user, lesson) cannot interleave a read and a write.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import LessonProgressRow
from app.models.course import Lesson
from app.models.progress import ProgressRecord, ProgressReport

# Plain column rows rather than ORM entities: the upsert writes through Core,
# so identity-mapped objects would go stale within the same session.
_COLUMNS = tuple(LessonProgressRow.__table__.c)


def build_upsert(user_id: str, lesson: Lesson, report: ProgressReport):
    """Return the atomic merge statement for one progress report."""
    table = LessonProgressRow.__table__
    stmt = pg_insert(table).values(
        user_id=user_id,
        lesson_id=lesson.id,
        course_id=lesson.course_id,
        is_completed=report.is_completed,
        watch_time=report.watch_time,
        last_position=report.last_position,
        completed_at=report.occurred_at if report.is_completed else None,
        created_at=report.occurred_at,
        updated_at=report.occurred_at,
    )
    excluded = stmt.excluded
    return stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.lesson_id],
        set_={
            "watch_time": func.greatest(table.c.watch_time, excluded.watch_time),
            "last_position": excluded.last_position,
            "is_completed": or_(table.c.is_completed, excluded.is_completed),
            "completed_at": func.coalesce(table.c.completed_at, excluded.completed_at),
            "updated_at": excluded.updated_at,
        },
    ).returning(*table.c)


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, lesson_id: UUID) -> ProgressRecord | None:
        stmt = select(*_COLUMNS).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).one_or_none()
        return None if row is None else _row_to_record(row)

    async def upsert(
        self, user_id: str, lesson: Lesson, report: ProgressReport
    ) -> ProgressRecord:
        stmt = build_upsert(user_id, lesson, report)
        row = (await self._session.execute(stmt)).one()
        return _row_to_record(row)

    async def completed_lesson_ids(self, user_id: str, course_id: UUID) -> set[UUID]:
        stmt = select(LessonProgressRow.lesson_id).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.course_id == course_id,
            LessonProgressRow.is_completed.is_(True),
        )
        return set((await self._session.execute(stmt)).scalars().all())

    async def list_for_course(
        self, user_id: str, course_id: UUID
    ) -> list[ProgressRecord]:
        stmt = select(*_COLUMNS).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.course_id == course_id,
        )
        rows = (await self._session.execute(stmt)).all()
        return [_row_to_record(r) for r in rows]

    async def count_for_lesson(self, lesson_id: UUID) -> int:
        stmt = select(func.count()).where(LessonProgressRow.lesson_id == lesson_id)
        return int((await self._session.execute(stmt)).scalar_one())

    async def watch_time_totals(self) -> dict[tuple[str, UUID], int]:
        stmt = select(
            LessonProgressRow.user_id,
            LessonProgressRow.course_id,
            func.sum(LessonProgressRow.watch_time),
        ).group_by(LessonProgressRow.user_id, LessonProgressRow.course_id)
        rows = (await self._session.execute(stmt)).all()
        return {
            (user_id, course_id): int(total or 0) for user_id, course_id, total in rows
        }


def _row_to_record(row: Any) -> ProgressRecord:
    return ProgressRecord(
        user_id=row.user_id,
        lesson_id=row.lesson_id,
        course_id=row.course_id,
        is_completed=row.is_completed,
        watch_time=row.watch_time,
        last_position=row.last_position,
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
