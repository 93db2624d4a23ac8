"""Read-through cache tests for GET /v1/enrollments.

1. First GET is a cache miss (populates the cache from the ledger)
2. Second GET is a cache hit
3. Enrolling or recording progress invalidates the caller's entry
4. Different users have isolated cache entries
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.services.cache import cache_service, summary_key
from tests.conftest import auth, mint_token, seed_course


def test_cache_miss_then_hit(client: TestClient) -> None:
    token = mint_token(username="cache-user")
    course, _ = seed_course()
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth(token))

    resp1 = client.get("/v1/enrollments", headers=auth(token))
    assert resp1.status_code == 200
    assert len(resp1.json()) == 1
    assert asyncio.run(cache_service.get(summary_key("cache-user"))) is not None

    resp2 = client.get("/v1/enrollments", headers=auth(token))
    assert resp2.json() == resp1.json()


def test_cache_invalidated_by_progress(client: TestClient) -> None:
    token = mint_token(username="cache-invalidation-user")
    course, lessons = seed_course(2)
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth(token))

    before = client.get("/v1/enrollments", headers=auth(token)).json()
    assert before[0]["progress"] == 0

    client.post(
        f"/v1/lessons/{lessons[0].id}/progress",
        json={"watch_time": 1, "last_position": 1, "is_completed": True},
        headers=auth(token),
    )

    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.json()[0]["progress"] == 50


def test_cache_invalidated_by_enroll(client: TestClient) -> None:
    token = mint_token(username="enroller")
    first, _ = seed_course(slug="first")
    second, _ = seed_course(slug="second")
    client.post(f"/v1/courses/{first.id}/enroll", headers=auth(token))
    assert len(client.get("/v1/enrollments", headers=auth(token)).json()) == 1

    client.post(f"/v1/courses/{second.id}/enroll", headers=auth(token))
    assert len(client.get("/v1/enrollments", headers=auth(token)).json()) == 2


def test_empty_summary_returns_empty_list(client: TestClient) -> None:
    token = mint_token(username="empty-user")
    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.status_code == 200
    assert resp.json() == []


def test_cache_is_user_isolated(client: TestClient) -> None:
    token_a = mint_token(username="user-a")
    token_b = mint_token(username="user-b")
    course, _ = seed_course()
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth(token_a))
    client.get("/v1/enrollments", headers=auth(token_a))

    resp = client.get("/v1/enrollments", headers=auth(token_b))
    assert resp.status_code == 200
    assert resp.json() == []
