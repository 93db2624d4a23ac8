"""JSON rendering of the records the progress ledger and middleware emit."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import pytest

from app.core.logging import _ContainerFormatter, _JsonFormatter
from app.models.course import Course, Lesson
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.repos.progress_repo import InMemoryProgressRepo
from app.services.errors import ConsistencyViolation
from app.services.progress_ledger import ProgressLedger

LEDGER_LOGGER = "app.services.progress_ledger"


def _ledger_with_chain() -> tuple[ProgressLedger, Lesson, Lesson]:
    catalog = InMemoryCatalogRepo()
    course = Course.new(slug="logs", title="Logs", is_published=True)
    first = Lesson.new(course_id=course.id, title="a", order=1, is_published=True)
    second = Lesson.new(
        course_id=course.id,
        title="b",
        order=2,
        is_published=True,
        is_locked=True,
        prerequisite_id=first.id,
    )
    ledger = ProgressLedger(
        catalog, InMemoryProgressRepo(), InMemoryEnrollmentRepo(), clock=lambda: 100
    )

    async def _setup() -> None:
        await catalog.add_course(course)
        await catalog.add_lesson(first)
        await catalog.add_lesson(second)
        await catalog.set_lesson_count(course.id, 2)
        await ledger.enroll("learner-7", course.id)

    asyncio.run(_setup())
    return ledger, first, second


def test_recorded_progress_carries_lesson_context(
    caplog: pytest.LogCaptureFixture,
) -> None:
    ledger, first, _ = _ledger_with_chain()
    with caplog.at_level(logging.INFO, logger=LEDGER_LOGGER):
        asyncio.run(
            ledger.record_progress(
                "learner-7",
                first.id,
                watch_time=30,
                last_position=30,
                is_completed=True,
            )
        )

    record = next(r for r in caplog.records if r.msg.startswith("Progress recorded"))
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == LEDGER_LOGGER
    assert parsed["lesson_id"] == str(first.id)
    assert parsed["course_id"] == str(first.course_id)
    assert "user=learner-7" in parsed["message"]


def test_gate_denial_is_a_structured_warning(
    caplog: pytest.LogCaptureFixture,
) -> None:
    ledger, first, second = _ledger_with_chain()
    with caplog.at_level(logging.WARNING, logger=LEDGER_LOGGER):
        with pytest.raises(ConsistencyViolation):
            asyncio.run(
                ledger.record_progress(
                    "learner-7",
                    second.id,
                    watch_time=5,
                    last_position=5,
                    is_completed=True,
                )
            )

    record = next(r for r in caplog.records if r.msg.startswith("Completion denied"))
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["level"] == "WARNING"
    assert parsed["lesson_id"] == str(second.id)
    assert str(first.id) in parsed["message"]


def test_request_summary_fields_render() -> None:
    """Fields set by RequestContextMiddleware survive JSON rendering."""
    record = logging.LogRecord(
        name="app.middleware.request_context",
        level=logging.INFO,
        pathname="request_context.py",
        lineno=1,
        msg="POST /v1/lessons/x/progress 200",
        args=(),
        exc_info=None,
    )
    record.request_id = "req-1"  # type: ignore[attr-defined]
    record.method = "POST"  # type: ignore[attr-defined]
    record.path = "/v1/lessons/x/progress"  # type: ignore[attr-defined]
    record.status_code = 200  # type: ignore[attr-defined]
    record.duration_ms = 3.5  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "req-1"
    assert parsed["path"] == "/v1/lessons/x/progress"
    assert parsed["status_code"] == 200
    assert parsed["duration_ms"] == 3.5
    assert "lesson_id" not in parsed


def test_exception_info_is_rendered() -> None:
    try:
        raise ConsistencyViolation("prerequisite lesson is not completed")
    except ConsistencyViolation:
        record = logging.LogRecord(
            name=LEDGER_LOGGER,
            level=logging.ERROR,
            pathname="progress_ledger.py",
            lineno=1,
            msg="unexpected",
            args=(),
            exc_info=sys.exc_info(),
        )
    parsed = json.loads(_JsonFormatter().format(record))
    assert "ConsistencyViolation: prerequisite lesson" in parsed["exception"]


def test_container_format_is_not_json() -> None:
    record = logging.LogRecord(
        name=LEDGER_LOGGER,
        level=logging.INFO,
        pathname="progress_ledger.py",
        lineno=10,
        msg="Enrolled user=%s",
        args=("learner-7",),
        exc_info=None,
    )
    output = _ContainerFormatter().format(record)
    assert "INFO" in output
    assert LEDGER_LOGGER in output
    assert "Enrolled user=learner-7" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output)
