"""Commit ordering for database-backed requests.

A stand-in session replaces the SQLAlchemy factory so these run without
PostgreSQL; the Pg repos are swapped for the shared in-memory ones.  What
is checked is the order of events: the service commits before the
endpoint invalidates the cached summary, and a failed commit leaves the
cache untouched and answers 500.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.api import dependencies
from app.db import engine as db_engine
from app.main import app
from app.models.enrollment import Enrollment
from app.services.cache import cache_service, summary_key
from tests.conftest import auth, mint_token, seed_course

USER = "tx-user"


class _Session:
    def __init__(self, *, fail_commit: bool = False) -> None:
        self.fail_commit = fail_commit
        self.events: list[str] = []

    async def __aenter__(self) -> _Session:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.events.append("close")

    async def commit(self) -> None:
        cached = await cache_service.get(summary_key(USER))
        self.events.append("commit" if cached is not None else "commit-after-evict")
        if self.fail_commit:
            raise RuntimeError("commit failed")

    async def rollback(self) -> None:
        self.events.append("rollback")


@pytest.fixture
def session(monkeypatch: pytest.MonkeyPatch) -> _Session:
    sess = _Session()
    monkeypatch.setattr(db_engine, "async_session_factory", lambda: sess)
    monkeypatch.setattr(
        dependencies, "PgCatalogRepo", lambda _s: dependencies.catalog_repo
    )
    monkeypatch.setattr(
        dependencies, "PgProgressRepo", lambda _s: dependencies.progress_repo
    )
    monkeypatch.setattr(
        dependencies, "PgEnrollmentRepo", lambda _s: dependencies.enrollment_repo
    )
    return sess


def _enrolled_with_cached_summary() -> str:
    course, lessons = seed_course(2)
    enrollment = Enrollment.new(user_id=USER, course_id=course.id, enrolled_at=1)
    asyncio.run(dependencies.enrollment_repo.add(enrollment))
    asyncio.run(cache_service.set(summary_key(USER), "[]", ttl_seconds=60))
    return str(lessons[0].id)


def test_progress_commits_before_cache_invalidation(session: _Session) -> None:
    lesson_id = _enrolled_with_cached_summary()
    client = TestClient(app)

    resp = client.post(
        f"/v1/lessons/{lesson_id}/progress",
        json={"watch_time": 10, "last_position": 10, "is_completed": True},
        headers=auth(mint_token(username=USER)),
    )

    assert resp.status_code == 200
    assert session.events[0] == "commit"
    assert asyncio.run(cache_service.get(summary_key(USER))) is None


def test_failed_commit_answers_500_and_keeps_cache(session: _Session) -> None:
    session.fail_commit = True
    lesson_id = _enrolled_with_cached_summary()
    client = TestClient(app, raise_server_exceptions=False)

    resp = client.post(
        f"/v1/lessons/{lesson_id}/progress",
        json={"watch_time": 10, "last_position": 10, "is_completed": True},
        headers=auth(mint_token(username=USER)),
    )

    assert resp.status_code == 500
    assert session.events[:2] == ["commit", "rollback"]
    assert asyncio.run(cache_service.get(summary_key(USER))) == "[]"
