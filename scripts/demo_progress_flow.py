"""Demo: enroll, watch, hit the prerequisite gate, finish a course.

Uses FastAPI TestClient against the in-memory repos (leave DATABASE_URL
unset).

Run with:
    python scripts/demo_progress_flow.py
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app
from app.services import token_service


def main() -> None:
    client = TestClient(app)
    admin = {
        "Authorization": "Bearer "
        + token_service.create_access_token(sub="admin-1", roles=["admin"])
    }
    learner = {
        "Authorization": "Bearer "
        + token_service.create_access_token(sub="learner-1")
    }

    # ── Seed data ───────────────────────────────────────────────────
    r = client.post(
        "/v1/admin/courses",
        json={"slug": "demo", "title": "Demo course", "is_published": True},
        headers=admin,
    )
    course_id = r.json()["id"]
    first = client.post(
        f"/v1/admin/courses/{course_id}/lessons",
        json={"title": "One", "order": 1, "duration": 300, "is_published": True},
        headers=admin,
    ).json()
    second = client.post(
        f"/v1/admin/courses/{course_id}/lessons",
        json={
            "title": "Two",
            "order": 2,
            "duration": 300,
            "is_published": True,
            "is_locked": True,
            "prerequisite_id": first["id"],
        },
        headers=admin,
    ).json()
    print(f"0. seeded course {course_id} with 2 lessons")

    # ── Step 1: enroll ──────────────────────────────────────────────
    r = client.post(f"/v1/courses/{course_id}/enroll", headers=learner)
    print(f"1. POST enroll                 → {r.status_code}  {r.json()['status']}")

    # ── Step 2: complete lesson two first (gated) ───────────────────
    r = client.post(
        f"/v1/lessons/{second['id']}/progress",
        json={"watch_time": 300, "last_position": 300, "is_completed": True},
        headers=learner,
    )
    print(f"2. complete locked lesson      → {r.status_code}  (gate)")

    # ── Step 3: finish lesson one, then two ─────────────────────────
    for step, lesson in ((3, first), (4, second)):
        r = client.post(
            f"/v1/lessons/{lesson['id']}/progress",
            json={"watch_time": 300, "last_position": 300, "is_completed": True},
            headers=learner,
        )
        enrollment = r.json()["enrollment"]
        print(
            f"{step}. complete {lesson['title']:<22} → {r.status_code}  "
            f"progress={enrollment['progress']}% status={enrollment['status']}"
        )

    # ── Step 5: summary ─────────────────────────────────────────────
    r = client.get("/v1/enrollments", headers=learner)
    print(f"5. GET /v1/enrollments         → {r.status_code}  {r.json()}")


if __name__ == "__main__":
    main()
