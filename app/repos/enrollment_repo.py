from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol
from uuid import UUID

from app.models.enrollment import Enrollment
from app.repos.keyed_lock import KeyedLocks


class EnrollmentRepo(Protocol):
    async def get(self, user_id: str, course_id: UUID) -> Enrollment | None: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def save(self, enrollment: Enrollment) -> None: ...
    async def list_for_user(self, user_id: str) -> list[Enrollment]: ...
    async def list_all(self) -> list[Enrollment]: ...
    async def count_for_course(self, course_id: UUID) -> int: ...

    def serialized(
        self, user_id: str, course_id: UUID
    ) -> AbstractAsyncContextManager[None]:
        """Hold the per-(user, course) write lock for the enclosed block."""
        ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID], Enrollment] = {}
        self._locks = KeyedLocks()

    async def get(self, user_id: str, course_id: UUID) -> Enrollment | None:
        return self._store.get((user_id, course_id))

    async def add(self, enrollment: Enrollment) -> None:
        key = (enrollment.user_id, enrollment.course_id)
        if key in self._store:
            raise ValueError("already enrolled")
        self._store[key] = enrollment

    async def save(self, enrollment: Enrollment) -> None:
        key = (enrollment.user_id, enrollment.course_id)
        if key not in self._store:
            raise KeyError("enrollment not found")
        self._store[key] = enrollment

    async def list_for_user(self, user_id: str) -> list[Enrollment]:
        rows = [e for e in self._store.values() if e.user_id == user_id]
        return sorted(rows, key=lambda e: e.enrolled_at, reverse=True)

    async def list_all(self) -> list[Enrollment]:
        return sorted(self._store.values(), key=lambda e: e.enrolled_at, reverse=True)

    async def count_for_course(self, course_id: UUID) -> int:
        return sum(1 for e in self._store.values() if e.course_id == course_id)

    def serialized(
        self, user_id: str, course_id: UUID
    ) -> AbstractAsyncContextManager[None]:
        return self._locks.hold((user_id, course_id))
