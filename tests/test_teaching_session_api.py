"""End-to-end tests for the teaching session endpoints."""

import pytest
from starlette.requests import Request

from app.core.rate_limit import step_save_key


@pytest.fixture()
def classroom(build):
    teacher = build.teacher(first_name="Ada", last_name="Byron")
    course = build.course(created_by=teacher)
    chapter = build.chapter(course, "Motion")
    speed = build.subchapter(chapter, "Speed")
    plan = build.plan(course, teacher)
    kids = [build.profile(build.user(), name) for name in ("Ola", "Pim", "Quin")]
    group = build.group(plan, "Lab", kids)
    return {"teacher": teacher, "plan": plan, "speed": speed, "kids": kids, "group": group}


def _create_session(client, headers, plan):
    resp = client.post("/api/teaching-sessions", json={
        "teaching_plan_id": plan.id,
        "title": "Week 1",
        "session_date": "2026-03-03T10:00:00",
        "mode": "online",
    }, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def test_full_session_walkthrough(client, classroom, auth):
    c = classroom
    headers = auth(c["teacher"])
    session_id = _create_session(client, headers, c["plan"])
    ola = c["kids"][0]

    resp = client.put(f"/api/teaching-sessions/{session_id}/attendance", json={"group_attendances": [{
        "group_id": c["group"].id,
        "students": [{"student_profile_id": ola.id, "status": "present", "participation_score": 90}],
    }]}, headers=headers)
    assert resp.status_code == 200, resp.text

    resp = client.put(f"/api/teaching-sessions/{session_id}/feedback", json={"group_feedbacks": [{
        "group_id": c["group"].id, "understanding_level": 4, "participation_level": 4, "teacher_satisfaction": 5,
    }]}, headers=headers)
    assert resp.status_code == 200, resp.text

    resp = client.put(f"/api/teaching-sessions/{session_id}/subchapter-coverage", json={"group_coverages": [{
        "group_id": c["group"].id,
        "subchapter_coverages": [{"subchapter_id": c["speed"].id, "was_covered": True, "coverage_percentage": 60}],
    }]}, headers=headers)
    assert resp.status_code == 200, resp.text

    detail = client.get(f"/api/teaching-sessions/{session_id}", headers=headers).json()["data"]
    assert detail["mode"] == "online"
    assert detail["is_completed"] is True
    assert detail["stats"]["attendance_count"] == 3
    assert detail["stats"]["present_count"] == 1
    assert detail["stats"]["covered_topics"] == 1
    assert detail["stats"]["average_satisfaction"] == 5.0

    sessions = client.get(f"/api/teaching-plans/{c['plan'].id}/sessions", headers=headers).json()["data"]
    assert [(s["id"], s["present_count"]) for s in sessions] == [(session_id, 1)]

    stats = client.get(f"/api/teaching-plans/{c['plan'].id}/coverage-stats", headers=headers).json()["data"]
    assert stats["course"][0]["subchapters"][0]["average_progress_percentage"] == 60.0


def test_step_endpoint_reports_pointer(client, classroom, auth):
    headers = auth(classroom["teacher"])
    session_id = _create_session(client, headers, classroom["plan"])

    resp = client.put(
        f"/api/teaching-sessions/{session_id}/step", json={"step_number": 1, "is_completed": True}, headers=headers,
    )

    assert resp.status_code == 200, resp.text
    assert resp.json()["data"] == {"current_step": 2, "is_completed": False}


def test_subchapter_grid_endpoint(client, classroom, auth):
    headers = auth(classroom["teacher"])
    session_id = _create_session(client, headers, classroom["plan"])

    data = client.get(f"/api/teaching-sessions/{session_id}/subchapter-coverage", headers=headers).json()["data"]

    assert data["session_id"] == session_id
    assert [g["group_name"] for g in data["group_coverages"]] == ["Lab"]
    assert data["group_coverages"][0]["subchapter_coverages"][0]["subchapter_title"] == "Speed"


def test_other_teacher_gets_403(client, build, classroom, auth):
    session_id = _create_session(client, auth(classroom["teacher"]), classroom["plan"])
    intruder = auth(build.teacher())

    assert client.get(f"/api/teaching-sessions/{session_id}", headers=intruder).status_code == 403
    resp = client.put(f"/api/teaching-sessions/{session_id}/feedback", json={"group_feedbacks": []}, headers=intruder)
    assert resp.status_code == 403
    assert client.get(f"/api/teaching-plans/{classroom['plan'].id}/coverage-stats", headers=intruder).status_code == 403


def test_invalid_feedback_level_is_422(client, classroom, auth):
    headers = auth(classroom["teacher"])
    session_id = _create_session(client, headers, classroom["plan"])

    resp = client.put(f"/api/teaching-sessions/{session_id}/feedback", json={"group_feedbacks": [{
        "group_id": classroom["group"].id, "understanding_level": 9,
    }]}, headers=headers)

    assert resp.status_code == 422


def test_database_error_returns_500_envelope(client, db_session, classroom, auth, failing_queries):
    headers = auth(classroom["teacher"])
    session_id = _create_session(client, headers, classroom["plan"])

    # current user lookup and report ownership pass; the member query fails
    with failing_queries(after=2):
        resp = client.get(f"/api/teaching-sessions/{session_id}", headers=headers)

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["message"].startswith("Loading session report failed")
    assert body["data"] is None


def test_step_save_limit_is_keyed_per_teacher_and_session():
    request = Request({
        "type": "http",
        "method": "PUT",
        "path": "/api/teaching-sessions/7/attendance",
        "headers": [],
        "client": ("10.0.0.5", 4321),
        "path_params": {"report_id": 7},
    })
    assert step_save_key(request) == "step-save:ip:10.0.0.5:session:7"

    request.state.user_id = "teacher-1"
    assert step_save_key(request) == "step-save:user:teacher-1:session:7"
