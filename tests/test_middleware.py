"""Tests for custom middleware (request logging, security headers) and error envelopes."""

import logging
from unittest.mock import patch


def test_health_ok(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_security_headers_present(client):
    """Security headers should be present on responses."""
    resp = client.get("/health")
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"
    assert "Strict-Transport-Security" not in resp.headers


def test_hsts_only_in_production(client):
    with patch("app.core.config.settings.environment", "production"):
        resp = client.get("/health")
    assert resp.headers.get("Strict-Transport-Security") == "max-age=31536000; includeSubDomains"


def test_request_logged_except_health(client, caplog):
    with caplog.at_level(logging.INFO, logger="edutrack.requests"):
        client.get("/health")
        client.get("/api/enrollments/me")

    messages = [r.getMessage() for r in caplog.records if r.name == "edutrack.requests"]
    assert len(messages) == 1
    assert "GET /api/enrollments/me | status=401" in messages[0]


def test_unauthenticated_request_gets_error_envelope(client):
    resp = client.get("/api/enrollments/me")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Could not validate credentials", "data": None}
    assert resp.headers.get("WWW-Authenticate") == "Bearer"


def test_garbage_token_rejected(client):
    resp = client.get("/api/enrollments/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_validation_error_envelope(client, build, auth):
    teacher = build.teacher()
    resp = client.post("/api/courses", json={"title": ""}, headers=auth(teacher))

    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Invalid request"
    assert body["data"][0]["loc"][-1] == "title"


def test_database_error_outside_a_guarded_block_gets_envelope(client, build, auth, failing_queries):
    teacher = build.teacher()
    course = build.course(created_by=teacher)
    headers = auth(teacher)

    # the current user loads; the course lookup in create_plan fails
    with failing_queries(after=1):
        resp = client.post("/api/teaching-plans", json={"course_id": course.id, "title": "Spring"}, headers=headers)

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["message"].startswith("Request failed:")
