"""Lesson progress endpoints.

  POST /v1/lessons/{lesson_id}/progress
    -> ledger.record_progress (merge, gate, recompute in one transaction)
    -> invalidate the caller's enrollment summary
    -> 200 {record, enrollment}

  GET  /v1/lessons/{lesson_id}/progress      caller's record or null
  GET  /v1/lessons/{lesson_id}/can-complete  consistency gate preview

The learner is always the token subject; the body carries no user id and
no course percentage.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt

from app.api.courses import EnrollmentOut
from app.api.dependencies import get_ledger, raise_http, require_user
from app.models.principal import Principal
from app.models.progress import ProgressRecord
from app.services.cache import cache_service, summary_key
from app.services.errors import LedgerError
from app.services.progress_ledger import ProgressLedger

router = APIRouter(prefix="/v1/lessons", tags=["progress"])


class ProgressIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    watch_time: StrictInt
    last_position: StrictInt
    is_completed: StrictBool
    occurred_at: StrictInt | None = None


class ProgressRecordOut(BaseModel):
    lesson_id: UUID
    course_id: UUID
    is_completed: bool
    watch_time: int
    last_position: int
    completed_at: int | None
    updated_at: int | None

    @classmethod
    def from_record(cls, r: ProgressRecord) -> ProgressRecordOut:
        return cls(
            lesson_id=r.lesson_id,
            course_id=r.course_id,
            is_completed=r.is_completed,
            watch_time=r.watch_time,
            last_position=r.last_position,
            completed_at=r.completed_at,
            updated_at=r.updated_at,
        )


class ProgressResultOut(BaseModel):
    record: ProgressRecordOut
    enrollment: EnrollmentOut


class GateOut(BaseModel):
    allowed: bool
    reason: str | None


@router.get("/{lesson_id}/progress", response_model=ProgressRecordOut | None)
async def get_lesson_progress(
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> ProgressRecordOut | None:
    record = await ledger.get_record(principal.user_id, lesson_id)
    return None if record is None else ProgressRecordOut.from_record(record)


@router.get("/{lesson_id}/can-complete", response_model=GateOut)
async def can_complete_lesson(
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> GateOut:
    try:
        decision = await ledger.can_complete(principal.user_id, lesson_id)
    except LedgerError as e:
        raise_http(e)
    return GateOut(allowed=decision.allowed, reason=decision.reason)


@router.post("/{lesson_id}/progress", response_model=ProgressResultOut)
async def record_lesson_progress(
    lesson_id: UUID,
    body: ProgressIn,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> ProgressResultOut:
    try:
        record = await ledger.record_progress(
            principal.user_id,
            lesson_id,
            watch_time=body.watch_time,
            last_position=body.last_position,
            is_completed=body.is_completed,
            occurred_at=body.occurred_at,
        )
        enrollment = await ledger.get_enrollment(principal.user_id, record.course_id)
    except LedgerError as e:
        raise_http(e)

    # The cached summary now holds a stale percentage.
    await cache_service.delete(summary_key(principal.user_id))

    return ProgressResultOut(
        record=ProgressRecordOut.from_record(record),
        enrollment=EnrollmentOut.from_enrollment(enrollment),
    )
