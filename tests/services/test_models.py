from __future__ import annotations

from fractions import Fraction
from uuid import uuid4

import pytest

from app.models.course import Lesson
from app.models.enrollment import Enrollment
from app.models.progress import ProgressReport


def _enrollment(**kwargs) -> Enrollment:
    return Enrollment(user_id="u", course_id=uuid4(), enrolled_at=0, **kwargs)


def test_progress_exact_is_a_fraction() -> None:
    e = _enrollment(completed_lessons=1, total_lessons=3)
    assert e.progress_exact == Fraction(100, 3)
    assert e.progress == 33


def test_progress_with_no_lessons_is_zero() -> None:
    assert _enrollment().progress == 0


@pytest.mark.parametrize(
    ("kwargs", "status"),
    [
        ({}, "not_started"),
        ({"last_activity_at": 5}, "in_progress"),
        ({"completed_lessons": 1, "total_lessons": 2}, "in_progress"),
        ({"completed_lessons": 1, "total_lessons": 2, "completed_at": 9}, "completed"),
    ],
)
def test_status(kwargs: dict, status: str) -> None:
    assert _enrollment(**kwargs).status == status


def test_lesson_is_gated_only_when_locked_with_prerequisite() -> None:
    course_id = uuid4()
    assert not Lesson.new(
        course_id=course_id, title="a", order=1, is_locked=True
    ).is_gated
    assert not Lesson.new(
        course_id=course_id, title="a", order=1, prerequisite_id=uuid4()
    ).is_gated
    gated = Lesson.new(
        course_id=course_id,
        title="a",
        order=1,
        is_locked=True,
        prerequisite_id=uuid4(),
    )
    assert gated.is_gated


def test_merge_keeps_created_at_and_first_completion() -> None:
    lesson_id, course_id = uuid4(), uuid4()
    first = ProgressReport(
        watch_time=10, last_position=10, is_completed=True, occurred_at=100
    ).merge_into(None, user_id="u", lesson_id=lesson_id, course_id=course_id)
    second = ProgressReport(
        watch_time=5, last_position=3, is_completed=False, occurred_at=200
    ).merge_into(first, user_id="u", lesson_id=lesson_id, course_id=course_id)
    assert second.created_at == 100
    assert second.completed_at == 100
    assert second.updated_at == 200
    assert second.watch_time == 10
    assert second.last_position == 3
