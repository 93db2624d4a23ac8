from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import catalog_repo, enrollment_repo, progress_repo
from app.main import app
from app.models.course import Course, Lesson
from app.services import token_service
from app.services.cache import cache_service

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_ledger_state() -> None:
    """Clear the shared in-memory catalog, progress and enrollment repos."""
    catalog_repo._courses.clear()
    catalog_repo._lessons.clear()
    progress_repo._records.clear()
    enrollment_repo._store.clear()
    enrollment_repo._locks.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    """Token with default role (user)."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Catalog test helpers
# ---------------------------------------------------------------------------


def seed_course(
    lessons: int = 4,
    *,
    slug: str = "test-course",
    chained: bool = False,
    duration: int | None = 600,
) -> tuple[Course, list[Lesson]]:
    """Persist a published course with `lessons` published lessons.

    With chained=True every lesson after the first is locked behind the
    one before it.
    """
    course = Course.new(
        slug=slug, title=slug.replace("-", " ").title(), is_published=True
    )
    made: list[Lesson] = []
    for order in range(1, lessons + 1):
        prev: UUID | None = made[-1].id if made else None
        made.append(
            Lesson.new(
                course_id=course.id,
                title=f"Lesson {order}",
                order=order,
                duration=duration,
                is_published=True,
                is_locked=chained and prev is not None,
                prerequisite_id=prev if chained else None,
            )
        )

    async def _persist() -> None:
        await catalog_repo.add_course(course)
        for lesson in made:
            await catalog_repo.add_lesson(lesson)
        await catalog_repo.set_lesson_count(course.id, len(made))

    asyncio.run(_persist())
    return course, made
