"""The PostgreSQL merge is one statement; check its shape without a database."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy.dialects import postgresql

from app.models.course import Lesson
from app.models.progress import ProgressReport
from app.repos.pg_progress_repo import build_upsert


def _sql(is_completed: bool) -> str:
    lesson = Lesson.new(course_id=uuid4(), title="l", order=1)
    report = ProgressReport(
        watch_time=30, last_position=10, is_completed=is_completed, occurred_at=99
    )
    stmt = build_upsert("learner", lesson, report)
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_upsert_is_single_conflict_statement() -> None:
    sql = _sql(is_completed=True)
    assert sql.startswith("INSERT INTO lesson_progress")
    assert "ON CONFLICT (user_id, lesson_id) DO UPDATE" in sql
    assert "RETURNING" in sql


def test_upsert_merge_rules() -> None:
    sql = _sql(is_completed=False)
    assert "greatest(lesson_progress.watch_time, excluded.watch_time)" in sql
    assert "lesson_progress.is_completed OR excluded.is_completed" in sql
    assert "coalesce(lesson_progress.completed_at, excluded.completed_at)" in sql
    # created_at is never rewritten on conflict
    assert "created_at = " not in sql.split("DO UPDATE")[1]
