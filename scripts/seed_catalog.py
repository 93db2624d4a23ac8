"""Seed a demo course into the configured database.

Run with:
    DATABASE_URL=postgresql+asyncpg://... python scripts/seed_catalog.py

Idempotent: does nothing when the demo slug already exists.
"""

from __future__ import annotations

import asyncio
import logging

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import session_scope
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_progress_repo import PgProgressRepo
from app.services.catalog_authoring import CatalogAuthoring

logger = logging.getLogger("seed_catalog")

DEMO_SLUG = "intro-to-python"
DEMO_LESSONS = [
    # (title, duration seconds, locked)
    ("Installing Python", 420, False),
    ("Variables and types", 780, False),
    ("Control flow", 900, True),
    ("Functions", 1020, True),
]


async def seed() -> None:
    async with session_scope() as session:
        catalog = PgCatalogRepo(session)
        if await catalog.get_course_by_slug(DEMO_SLUG) is not None:
            logger.info("Course slug=%s already seeded", DEMO_SLUG)
            return

        # One transaction for the whole course: session_scope commits it.
        authoring = CatalogAuthoring(
            catalog, PgProgressRepo(session), PgEnrollmentRepo(session)
        )
        course = await authoring.create_course(
            slug=DEMO_SLUG,
            title="Introduction to Python",
            description="Four short lessons; later ones unlock in order.",
            is_published=True,
        )
        previous = None
        for order, (title, duration, locked) in enumerate(DEMO_LESSONS, start=1):
            lesson = await authoring.add_lesson(
                course.id,
                title=title,
                order=order,
                duration=duration,
                is_published=True,
                is_locked=locked,
                prerequisite_id=previous.id if locked and previous else None,
            )
            previous = lesson
        logger.info("Seeded course id=%s with %d lessons", course.id, len(DEMO_LESSONS))


def main() -> None:
    setup_logging(SETTINGS.log_level)
    if not SETTINGS.database_url:
        raise SystemExit("DATABASE_URL is not set; nothing to seed")
    asyncio.run(seed())


if __name__ == "__main__":
    main()
