from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    description: str | None = None
    level: str = "beginner"  # beginner|intermediate|advanced
    is_published: bool = False
    # Denormalized count of published lessons; the ledger verifies it
    # against the lesson rows rather than trusting it.
    lesson_count: int = 0
    created_at: int | None = None

    @staticmethod
    def new(
        *,
        slug: str,
        title: str,
        description: str | None = None,
        level: str = "beginner",
        is_published: bool = False,
        created_at: int | None = None,
    ) -> Course:
        return Course(
            id=uuid4(),
            slug=slug,
            title=title,
            description=description,
            level=level,
            is_published=is_published,
            created_at=created_at,
        )


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    course_id: UUID
    title: str
    order: int
    duration: int | None = None  # seconds; None when unknown
    is_published: bool = False
    is_locked: bool = False
    prerequisite_id: UUID | None = None

    @property
    def is_gated(self) -> bool:
        """True when completion depends on another lesson."""
        return self.is_locked and self.prerequisite_id is not None

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        order: int,
        duration: int | None = None,
        is_published: bool = False,
        is_locked: bool = False,
        prerequisite_id: UUID | None = None,
    ) -> Lesson:
        return Lesson(
            id=uuid4(),
            course_id=course_id,
            title=title,
            order=order,
            duration=duration,
            is_published=is_published,
            is_locked=is_locked,
            prerequisite_id=prerequisite_id,
        )
