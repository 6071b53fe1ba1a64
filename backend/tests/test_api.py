"""End-to-end API tests through the FastAPI TestClient."""
from decimal import Decimal

from conftest import CRON_SECRET, register


def _bootstrap(client):
    growth_id, growth = register(client, "growth@example.com", "growth_team")
    pm_id, pm = register(client, "pm@example.com", "product_manager")
    ana_id, ana = register(client, "ana@example.com", "consultant")
    response = client.post(
        "/projects",
        json={
            "title": "Atlas",
            "budgeted_hours": "1000",
            "start_date": "2030-01-07",
            "end_date": "2030-03-03",
            "product_manager_id": pm_id,
            "consultants": [{"user_id": ana_id, "allocated_hours": "100"}],
        },
        headers=pm,
    )
    assert response.status_code == 201, response.text
    project = response.json()
    return {"growth": growth, "pm": pm, "ana": ana, "ana_id": ana_id, "project": project}


def _create_phase(client, ctx, sprint_numbers=(1, 2), name="Build"):
    by_number = {s["sprint_number"]: s["id"] for s in ctx["project"]["sprints"]}
    response = client.post(
        "/phases",
        json={
            "project_id": ctx["project"]["id"],
            "name": name,
            "sprint_ids": [by_number[n] for n in sprint_numbers],
        },
        headers=ctx["pm"],
    )
    return response


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_authentication(client):
    assert client.get("/projects/1").status_code == 401


def test_login_returns_token(client):
    register(client, "ana@example.com", "consultant")
    response = client.post("/auth/login", json={"email": "ana@example.com", "password": "password123"})
    assert response.status_code == 200
    assert response.json()["user"]["roles"] == ["consultant"]
    bad = client.post("/auth/login", json={"email": "ana@example.com", "password": "wrong-password"})
    assert bad.status_code == 401


def test_project_bootstrap(client):
    ctx = _bootstrap(client)
    assert [s["sprint_number"] for s in ctx["project"]["sprints"]] == [1, 2, 3, 4]
    assert ctx["project"]["warning"] is None

    over = client.post(
        "/projects",
        json={
            "title": "Borealis",
            "budgeted_hours": "50",
            "start_date": "2030-01-07",
            "end_date": "2030-01-20",
            "consultants": [{"user_id": ctx["ana_id"], "allocated_hours": "80"}],
        },
        headers=ctx["pm"],
    )
    assert over.status_code == 201, over.text
    assert over.json()["warning"] == "Budget exceeded by 30h for Borealis"

    _, consultant = register(client, "bo@example.com", "consultant")
    forbidden = client.post(
        "/projects",
        json={"title": "X", "budgeted_hours": "10", "start_date": "2030-01-07", "end_date": "2030-01-20"},
        headers=consultant,
    )
    assert forbidden.status_code == 403


def test_phase_structure_errors_map_to_400(client):
    ctx = _bootstrap(client)
    response = _create_phase(client, ctx, sprint_numbers=(1, 3))
    assert response.status_code == 400
    assert response.json() == {
        "detail": "Selected sprints must be consecutive (got 1, 3)",
        "warning": None,
    }


def test_sprint_selection_preview(client):
    ctx = _bootstrap(client)
    ids = [s["id"] for s in ctx["project"]["sprints"]]
    response = client.post(
        f"/projects/{ctx['project']['id']}/sprint-selection",
        json={"selected_ids": [ids[0]], "sprint_id": ids[2], "checked": True},
        headers=ctx["pm"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["accepted"] is False
    assert body["selected_ids"] == [ids[0]]


def test_allocation_approval_and_weekly_planning_flow(client):
    ctx = _bootstrap(client)
    phase = _create_phase(client, ctx).json()
    assert phase["sprint_numbers"] == [1, 2]
    assert Decimal(phase["max_hours_per_consultant"]) == Decimal("160")

    response = client.put(
        f"/phases/{phase['id']}/allocations",
        json={"consultant_id": ctx["ana_id"], "total_hours": "40"},
        headers=ctx["pm"],
    )
    assert response.status_code == 200, response.text
    allocation = response.json()["allocation"]
    assert allocation["approval_status"] == "PENDING"

    over = client.put(
        f"/phases/{phase['id']}/allocations",
        json={"consultant_id": ctx["ana_id"], "total_hours": "150"},
        headers=ctx["pm"],
    )
    assert over.status_code == 400
    assert over.json()["detail"].startswith("Over-allocated by 50h")

    assert client.get("/approvals/phase-allocations", headers=ctx["ana"]).status_code == 403
    pending = client.get("/approvals/phase-allocations", headers=ctx["growth"]).json()
    assert [a["id"] for a in pending] == [allocation["id"]]

    approved = client.post(
        f"/approvals/phase-allocations/{allocation['id']}/approve", json={}, headers=ctx["growth"]
    )
    assert approved.status_code == 200, approved.text
    assert approved.json()["allocation"]["approval_status"] == "APPROVED"
    assert approved.json()["warning"] == "Low budget utilization: 4% for Atlas"

    plan = client.post(
        "/weekly-allocations",
        json={
            "phase_allocation_id": allocation["id"],
            "weeks": [{"week_start": "2030-01-07", "hours": "10"}, {"week_start": "2030-01-14", "hours": "12"}],
        },
        headers=ctx["ana"],
    )
    assert plan.status_code == 200, plan.text
    assert plan.json()["warning"] == "18h remaining to distribute for Build"
    week_ids = [w["id"] for w in plan.json()["weeks"]]

    queue = client.get("/approvals/weekly-allocations", headers=ctx["growth"]).json()
    assert sorted(w["id"] for w in queue) == sorted(week_ids)

    batch = client.post(
        "/approvals/weekly-allocations/batch",
        json={
            "default_action": "APPROVE",
            "items": [{"id": week_ids[0]}, {"id": week_ids[1], "action": "REJECT"}, {"id": 9999}],
            "reason": "Second week not confirmed",
        },
        headers=ctx["growth"],
    )
    assert batch.status_code == 200, batch.text
    body = batch.json()
    assert (body["succeeded"], body["failed"]) == (2, 1)
    assert [r["status"] for r in body["results"]] == ["APPROVED", "REJECTED", None]

    # Removing a consultant with planned hours waits for approval
    removal = client.delete(f"/phases/{phase['id']}/allocations/{ctx['ana_id']}", headers=ctx["pm"])
    assert removal.status_code == 200
    assert removal.json()["allocation"]["approval_status"] == "DELETION_PENDING"
    kept = client.post(
        f"/approvals/phase-allocations/{allocation['id']}/reject-deletion", headers=ctx["growth"]
    )
    assert kept.json()["approval_status"] == "APPROVED"


def test_other_consultants_cannot_plan_for_you(client):
    ctx = _bootstrap(client)
    phase = _create_phase(client, ctx).json()
    allocation = client.put(
        f"/phases/{phase['id']}/allocations",
        json={"consultant_id": ctx["ana_id"], "total_hours": "40"},
        headers=ctx["pm"],
    ).json()["allocation"]
    _, bo = register(client, "bo@example.com", "consultant")
    response = client.post(
        "/weekly-allocations",
        json={"phase_allocation_id": allocation["id"], "weeks": [{"week_start": "2030-01-07", "hours": "5"}]},
        headers=bo,
    )
    assert response.status_code == 403


def test_hour_change_request_flow(client):
    ctx = _bootstrap(client)
    phase = _create_phase(client, ctx).json()
    allocation = client.put(
        f"/phases/{phase['id']}/allocations",
        json={"consultant_id": ctx["ana_id"], "total_hours": "40"},
        headers=ctx["pm"],
    ).json()["allocation"]
    client.post(f"/approvals/phase-allocations/{allocation['id']}/approve", json={}, headers=ctx["growth"])

    short = client.post(
        "/hour-changes",
        json={
            "phase_allocation_id": allocation["id"],
            "change_type": "ADJUSTMENT",
            "reason": "More",
            "requested_hours": "45",
        },
        headers=ctx["ana"],
    )
    assert short.status_code == 400
    assert "more detailed reason" in short.json()["detail"]

    missing = client.post(
        "/hour-changes",
        json={"phase_allocation_id": allocation["id"], "change_type": "SHIFT", "reason": "Handing over work"},
        headers=ctx["ana"],
    )
    assert missing.status_code == 422

    created = client.post(
        "/hour-changes",
        json={
            "phase_allocation_id": allocation["id"],
            "change_type": "ADJUSTMENT",
            "reason": "Integration work grew",
            "requested_hours": "45",
        },
        headers=ctx["ana"],
    )
    assert created.status_code == 201, created.text
    request_id = created.json()["request"]["id"]

    queue = client.get("/approvals/hour-changes", headers=ctx["growth"]).json()
    assert [r["id"] for r in queue] == [request_id]

    approved = client.post(f"/approvals/hour-changes/{request_id}/approve", headers=ctx["growth"])
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "APPROVED"

    again = client.post(f"/approvals/hour-changes/{request_id}/approve", headers=ctx["growth"])
    assert again.status_code == 409


def test_availability(client):
    ctx = _bootstrap(client)
    phase = _create_phase(client, ctx).json()
    response = client.get(
        "/availability",
        params={"start": "2030-01-07", "end": "2030-01-20", "consultant_ids": [ctx["ana_id"]]},
        headers=ctx["ana"],
    )
    assert response.status_code == 200
    [ana] = response.json()
    assert ana["week_count"] == 2
    assert ana["overall_status"] == "available"

    per_phase = client.get(f"/availability/phases/{phase['id']}", headers=ctx["pm"]).json()
    assert per_phase["total_weeks"] == 4
    assert [c["consultant_id"] for c in per_phase["consultants"]] == [ctx["ana_id"]]

    reversed_range = client.get(
        "/availability",
        params={"start": "2030-01-20", "end": "2030-01-07"},
        headers=ctx["ana"],
    )
    assert reversed_range.status_code == 400


def test_cron_requires_secret(client):
    assert client.post("/cron/detect-expired-allocations").status_code == 401
    denied = client.post("/cron/detect-expired-allocations", headers={"Authorization": "Bearer nope"})
    assert denied.status_code == 401
    response = client.post(
        "/cron/detect-expired-allocations",
        headers={"Authorization": f"Bearer {CRON_SECRET}"},
    )
    assert response.status_code == 200
    assert response.json() == {"expired_count": 0, "allocation_ids": []}
