"""Enrollment summaries for the calling learner.

GET /v1/enrollments is served read-through:

  cache hit  -> return cached JSON
  cache miss -> ledger.list_enrollments -> populate (TTL) -> return

Enrollment and progress writes delete the caller's key once the write has
committed, so the TTL only bounds staleness when an invalidation is lost.
"""

from __future__ import annotations

import json
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.courses import EnrollmentOut
from app.api.dependencies import get_ledger, raise_http, require_user
from app.api.progress import ProgressRecordOut
from app.core.config import SETTINGS
from app.models.principal import Principal
from app.services.cache import cache_service, summary_key
from app.services.errors import LedgerError
from app.services.progress_ledger import ProgressLedger

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


@router.get("", response_model=list[EnrollmentOut])
async def list_my_enrollments(
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> list[EnrollmentOut]:
    key = summary_key(principal.user_id)

    cached = await cache_service.get(key)
    if cached is not None:
        return [EnrollmentOut.model_validate(e) for e in json.loads(cached)]

    enrollments = [
        EnrollmentOut.from_enrollment(e)
        for e in await ledger.list_enrollments(principal.user_id)
    ]
    await cache_service.set(
        key,
        json.dumps([e.model_dump(mode="json") for e in enrollments]),
        SETTINGS.summary_cache_ttl,
    )
    return enrollments


@router.get("/{course_id}", response_model=EnrollmentOut)
async def get_my_enrollment(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> EnrollmentOut:
    try:
        enrollment = await ledger.get_enrollment(principal.user_id, course_id)
    except LedgerError as e:
        raise_http(e)
    return EnrollmentOut.from_enrollment(enrollment)


@router.post("/{course_id}/recompute", response_model=EnrollmentOut)
async def recompute_my_enrollment(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> EnrollmentOut:
    """Rederive progress, e.g. after lessons were published or unpublished."""
    try:
        enrollment = await ledger.recompute(principal.user_id, course_id)
    except LedgerError as e:
        raise_http(e)
    await cache_service.delete(summary_key(principal.user_id))
    return EnrollmentOut.from_enrollment(enrollment)


@router.get("/{course_id}/lessons", response_model=list[ProgressRecordOut])
async def list_my_lesson_progress(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    ledger: Annotated[ProgressLedger, Depends(get_ledger)],
) -> list[ProgressRecordOut]:
    try:
        await ledger.get_enrollment(principal.user_id, course_id)
    except LedgerError as e:
        raise_http(e)
    records = await ledger.list_course_records(principal.user_id, course_id)
    return [ProgressRecordOut.from_record(r) for r in records]
