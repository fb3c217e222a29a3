import pytest
from datetime import timedelta
from fastapi import status
from sqlalchemy import text

from leavedesk.models.activity_type import ApprovalWorkflow
from leavedesk.models.leave_request import RequestStatus
from leavedesk.services.leave_request_service import LeaveRequestService


def _headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def vacation(make_activity_type):
    return make_activity_type("VAC", approval_workflow=ApprovalWorkflow.SINGLE_LEVEL, default_annual_balance=20.0)


def _create(client, user, activity_type, start, days=5):
    return client.post(
        "/api/leave-requests",
        headers=_headers(user),
        json={
            "activity_type_id": activity_type.id,
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=days - 1)).isoformat(),
            "reason": "Family trip",
        },
    )


def test_missing_identity_is_unauthorized(client):
    response = client.get("/api/leave-requests")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "AUTH_FAILED"


def test_unknown_identity_is_unauthorized(client):
    response = client.get("/api/leave-requests", headers={"X-User-Id": "999"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_create_and_fetch_request(client, team, vacation, monday):
    employee = team["employee"]
    response = _create(client, employee, vacation, monday)

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "draft"
    assert data["total_days"] == 5
    assert data["request_number"].startswith("LR-")

    detail = client.get(f"/api/leave-requests/{data['id']}", headers=_headers(employee))
    assert detail.status_code == 200
    assert detail.json()["approvals"] == []


def test_full_approval_flow(client, team, vacation, monday):
    employee, manager = team["employee"], team["manager"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]

    submitted = client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(employee))
    assert submitted.status_code == 200
    assert submitted.json()["data"]["status"] == "pending"

    pending = client.get("/api/leave-requests/pending-approvals", headers=_headers(manager))
    assert [r["id"] for r in pending.json()] == [request_id]

    approved = client.post(
        f"/api/leave-requests/{request_id}/approve",
        headers=_headers(manager),
        json={"comment": "Have fun"},
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"

    approvals = client.get(f"/api/leave-requests/{request_id}/approvals", headers=_headers(employee)).json()
    assert [(a["approver_id"], a["status"], a["comment"]) for a in approvals] == [
        (manager.id, "approved", "Have fun"),
    ]

    balances = client.get(
        f"/api/balances/{employee.id}", params={"year": monday.year}, headers=_headers(employee)
    ).json()
    assert len(balances) == 1
    assert balances[0]["used_days"] == 5
    assert balances[0]["pending_days"] == 0
    assert balances[0]["available_days"] == 15


def test_foreign_approval_is_forbidden(client, team, vacation, monday):
    employee = team["employee"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]
    client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(employee))

    response = client.post(f"/api/leave-requests/{request_id}/approve", headers=_headers(employee), json={})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_business_rule_violation_is_bad_request(client, team, make_activity_type, monday):
    tight = make_activity_type("TIGHT", default_annual_balance=1.0)

    response = _create(client, team["employee"], tight, monday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["errors"][0]["code"] == "VALIDATION_FAILED"


def test_reversed_dates_fail_validation(client, team, vacation, monday):
    response = client.post(
        "/api/leave-requests",
        headers=_headers(team["employee"]),
        json={
            "activity_type_id": vacation.id,
            "start_date": monday.isoformat(),
            "end_date": (monday - timedelta(days=1)).isoformat(),
        },
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_missing_request_is_not_found(client, team):
    response = client.get("/api/leave-requests/4242", headers=_headers(team["employee"]))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


def test_outsider_cannot_view_request(client, team, make_user, vacation, monday):
    outsider = make_user(name="outsider")
    request_id = _create(client, team["employee"], vacation, monday).json()["data"]["id"]

    response = client.get(f"/api/leave-requests/{request_id}", headers=_headers(outsider))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_missing_approvers_is_configuration_error(client, make_user, vacation, monday):
    loner = make_user(name="loner")
    request_id = _create(client, loner, vacation, monday).json()["data"]["id"]

    response = client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(loner))

    assert response.status_code == 500
    assert response.json()["errors"][0]["code"] == "WORKFLOW_CONFIGURATION_ERROR"


def test_revision_needs_comment(client, team, vacation, monday):
    employee = team["employee"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]
    client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(employee))

    empty = client.post(
        f"/api/leave-requests/{request_id}/request-revision", headers=_headers(team["manager"]), json={"comment": ""}
    )
    assert empty.status_code == 422

    response = client.post(
        f"/api/leave-requests/{request_id}/request-revision",
        headers=_headers(team["manager"]),
        json={"comment": "Please move by a week"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "revision_requested"


def test_update_and_cancel(client, team, vacation, monday):
    employee = team["employee"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]

    updated = client.put(
        f"/api/leave-requests/{request_id}",
        headers=_headers(employee),
        json={"start_date": monday.isoformat(), "end_date": (monday + timedelta(days=2)).isoformat()},
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["total_days"] == 3

    cancelled = client.post(
        f"/api/leave-requests/{request_id}/cancel", headers=_headers(employee), json={"reason": "Not going"}
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"
    assert cancelled.json()["data"]["cancellation_reason"] == "Not going"


def test_calculate_days_endpoint(client, team, vacation, monday):
    response = client.get(
        "/api/leave-requests/calculate-days",
        headers=_headers(team["employee"]),
        params={
            "activity_type_id": vacation.id,
            "start_date": monday.isoformat(),
            "end_date": (monday + timedelta(days=6)).isoformat(),
        },
    )
    assert response.status_code == 200
    assert response.json()["total_days"] == 5


def test_my_requests_and_team_view(client, team, vacation, monday):
    employee = team["employee"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]
    client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(employee))

    mine = client.get("/api/leave-requests", params={"year": monday.year}, headers=_headers(employee))
    assert [r["id"] for r in mine.json()] == [request_id]

    filtered = client.get(
        "/api/leave-requests", params={"year": monday.year, "status": "draft"}, headers=_headers(employee)
    )
    assert filtered.json() == []

    team_view = client.get("/api/leave-requests/team", headers=_headers(team["manager"]))
    assert [r["id"] for r in team_view.json()] == [request_id]


def test_balance_adjustment_requires_hr_admin(client, team, vacation):
    employee, hr_admin = team["employee"], team["hr_admin"]
    payload = {"activity_type_id": vacation.id, "year": 2030, "days": 2.5, "reason": "Overtime"}

    forbidden = client.post(f"/api/balances/{employee.id}/adjust", headers=_headers(employee), json=payload)
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN

    response = client.post(f"/api/balances/{employee.id}/adjust", headers=_headers(hr_admin), json=payload)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["adjustment_days"] == 2.5
    assert data["available_days"] == 22.5


def test_balances_hidden_from_unrelated_users(client, team, make_user):
    outsider = make_user(name="outsider")

    response = client.get(f"/api/balances/{team['employee'].id}", headers=_headers(outsider))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.get(f"/api/balances/{team['employee'].id}", headers=_headers(team["director"]))
    assert response.status_code == 200


def test_carry_over_endpoint(client, team, make_activity_type):
    rolling = make_activity_type("ROLL", default_annual_balance=10.0, allow_carry_over=True, max_carry_over_days=4)
    hr_admin, employee = team["hr_admin"], team["employee"]
    client.post(
        f"/api/balances/{employee.id}/adjust",
        headers=_headers(hr_admin),
        json={"activity_type_id": rolling.id, "year": 2030, "days": 0, "reason": "open balance"},
    )

    response = client.post("/api/balances/carry-over", headers=_headers(hr_admin), json={"from_year": 2030})

    assert response.status_code == 200
    assert response.json()["data"] == {"from_year": 2030, "to_year": 2031, "balances_updated": 1}
    next_year = client.get(
        f"/api/balances/{employee.id}", params={"year": 2031}, headers=_headers(employee)
    ).json()
    assert next_year[0]["carried_over_days"] == 4


def test_carry_over_requires_hr_admin(client, team):
    response = client.post("/api/balances/carry-over", headers=_headers(team["manager"]), json={"from_year": 2030})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_concurrent_modification_is_conflict(client, db_session, team, vacation, monday, monkeypatch):
    employee = team["employee"]
    request_id = _create(client, employee, vacation, monday).json()["data"]["id"]
    real_locked = LeaveRequestService._locked_request

    def overtaken_after_read(self, locked_id):
        request = real_locked(self, locked_id)
        # Another writer bumps the row between our read and our write
        self.db.execute(text("UPDATE leave_requests SET version = version + 1 WHERE id = :id"), {"id": locked_id})
        return request

    monkeypatch.setattr(LeaveRequestService, "_locked_request", overtaken_after_read)
    response = client.post(f"/api/leave-requests/{request_id}/submit", headers=_headers(employee))
    monkeypatch.undo()

    assert response.status_code == status.HTTP_409_CONFLICT
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "CONFLICT"

    db_session.expire_all()
    request = LeaveRequestService(db_session).get_request(request_id)
    assert request.status == RequestStatus.DRAFT
    assert request.submission_round == 0
