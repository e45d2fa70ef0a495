import uuid
from datetime import timedelta

import pytest

from app.services.auth import create_access_token
from conftest import Factory, WEEK_END, WEEK_START


def headers(user_id, role):
    return {"X-User-Id": str(user_id), "X-User-Role": role}


@pytest.fixture()
def seeded(session_factory):
    """Commit a small team and hand back plain ids so requests use their own sessions."""
    session = session_factory()
    factory = Factory(session)
    manager = factory.user("manager", "Maya Manager")
    employee = factory.user("employee", "Erin Employee")
    project = factory.project("Apollo", manager=manager, employees=[employee])
    timesheet = factory.timesheet(employee, {project: 8})
    ids = {
        "manager": manager.user_id,
        "employee": employee.user_id,
        "project": project.id,
        "timesheet": timesheet.id,
    }
    session.close()
    return ids


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_approve_endpoint(client, seeded):
    url = f"/api/v1/team-review/timesheets/{seeded['timesheet']}/projects/{seeded['project']}/approve"

    first = client.post(url, headers=headers(seeded["manager"], "manager"))
    second = client.post(url, headers=headers(seeded["manager"], "manager"))

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["data"]["status"] == "manager_approved"
    assert body["data"]["changed"] is True
    assert second.json()["data"]["changed"] is False
    assert second.json()["message"] == "Project was already approved"


def test_reject_with_short_reason_is_422(client, seeded):
    url = f"/api/v1/team-review/timesheets/{seeded['timesheet']}/projects/{seeded['project']}/reject"

    response = client.post(url, json={"reason": "no"}, headers=headers(seeded["manager"], "manager"))

    assert response.status_code == 422
    assert response.json() == {
        "success": False,
        "error": {
            "code": "validation_error",
            "message": "Rejection reason must be at least 10 characters",
            "details": {"min_length": 10},
        },
    }


def test_employee_is_forbidden(client, seeded):
    response = client.get("/api/v1/team-review/project-weeks", headers=headers(seeded["employee"], "employee"))
    assert response.status_code == 403
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "http_error"


def test_unknown_timesheet_is_404(client, seeded):
    url = f"/api/v1/team-review/timesheets/{uuid.uuid4()}/projects/{seeded['project']}/approve"
    response = client.post(url, headers=headers(seeded["manager"], "manager"))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_freeze_before_review_is_409(client, seeded):
    management = uuid.uuid4()
    body = {"project_id": str(seeded["project"]), "week_start": WEEK_START.isoformat(), "week_end": WEEK_END.isoformat()}

    response = client.post("/api/v1/team-review/project-week/freeze", json=body, headers=headers(management, "management"))

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "invalid_transition"
    assert error["details"]["blocking_users"][0]["user_name"] == "Erin Employee"


def test_project_weeks_listing(client, seeded):
    params = {"week_start": WEEK_START.isoformat(), "week_end": WEEK_END.isoformat()}
    response = client.get("/api/v1/team-review/project-weeks", params=params, headers=headers(seeded["manager"], "manager"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["pagination"]["total"] == 1
    assert body["project_weeks"][0]["users"][0]["user_name"] == "Erin Employee"
    assert body["filters_applied"]["status"] == "pending"


def test_project_week_approve_and_history(client, seeded):
    body = {"project_id": str(seeded["project"]), "week_start": WEEK_START.isoformat(), "week_end": WEEK_END.isoformat()}
    manager = headers(seeded["manager"], "manager")

    response = client.post("/api/v1/team-review/project-week/approve", json=body, headers=manager)
    assert response.status_code == 200
    assert response.json()["data"]["affected_timesheets"] == 1

    history = client.get(f"/api/v1/team-review/timesheets/{seeded['timesheet']}/history", headers=manager).json()["data"]
    assert len(history) == 1
    assert history[0]["action"] == "approved"
    assert history[0]["status_after"] == "manager_approved"


def test_billable_adjustment_endpoint(client, seeded):
    url = f"/api/v1/team-review/timesheets/{seeded['timesheet']}/projects/{seeded['project']}/billable-adjustment"
    response = client.put(url, json={"adjustment": "-1.5"}, headers=headers(seeded["manager"], "manager"))
    assert response.status_code == 200
    assert response.json()["data"]["billable_hours"] == 6.5


def test_bearer_token_resolves_role_from_directory(client, seeded):
    token = create_access_token({"sub": str(seeded["manager"])})
    url = f"/api/v1/team-review/timesheets/{seeded['timesheet']}/projects/{seeded['project']}/approve"

    response = client.post(url, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["data"]["tier"] == "manager"


def test_invalid_token_is_401(client, seeded):
    response = client.get("/api/v1/team-review/project-weeks", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_timesheet_endpoints(client, seeded):
    employee = headers(seeded["employee"], "employee")
    next_monday = WEEK_START + timedelta(days=7)

    created = client.post(
        "/api/v1/timesheets/entries",
        json={"date": next_monday.isoformat(), "project_id": str(seeded["project"]), "hours": 7.5, "task_name": "Build"},
        headers=employee,
    )
    assert created.status_code == 200
    timesheet_id = created.json()["data"]["timesheet_id"]
    assert created.json()["data"]["hours"] == 7.5

    assert client.get(f"/api/v1/timesheets/{timesheet_id}/can-submit", headers=employee).json()["can_submit"] is True

    submitted = client.post(f"/api/v1/timesheets/{timesheet_id}/submit", headers=employee)
    assert submitted.status_code == 200
    assert submitted.json()["data"]["status"] == "submitted"

    detail = client.get(f"/api/v1/timesheets/{timesheet_id}", headers=employee).json()["data"]
    assert detail["timesheet"]["total_hours"] == 7.5
    assert detail["approvals"][0]["manager_status"] == "pending"

    oversized = client.post(
        "/api/v1/timesheets/entries",
        json={"date": next_monday.isoformat(), "project_id": str(seeded["project"]), "hours": 30},
        headers=employee,
    )
    assert oversized.status_code == 422


def test_entry_moves_to_another_day(client, seeded):
    employee = headers(seeded["employee"], "employee")
    next_monday = WEEK_START + timedelta(days=7)
    created = client.post(
        "/api/v1/timesheets/entries",
        json={"date": next_monday.isoformat(), "project_id": str(seeded["project"]), "hours": 4},
        headers=employee,
    ).json()["data"]

    tuesday = next_monday + timedelta(days=1)
    moved = client.put(f"/api/v1/timesheets/entries/{created['id']}", json={"date": tuesday.isoformat()}, headers=employee)

    assert moved.status_code == 200
    assert moved.json()["data"]["date"] == tuesday.isoformat()
    assert moved.json()["data"]["hours"] == 4.0
