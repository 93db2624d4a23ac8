"""Prometheus scrape endpoint.

Returns every metric in app/core/metrics.py as plain-text exposition
format, not JSON.  Example lines:

  http_requests_total{endpoint="/v1/lessons/{lesson_id}/progress",
                      method="POST",status_code="200"} 311.0
  progress_events_total{result="gate_denied"} 4.0
  consistency_gate_denials_total 4.0

The endpoint label is the route template, so per-lesson URLs do not
explode label cardinality.  /metrics carries no auth; expose it only on
the internal network the scraper runs in.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
