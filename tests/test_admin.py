# Admin endpoints: account listing and suspension, and issue analytics.
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app import models
from app.db import SessionLocal
from app.repository import SqlRepository
from app.workflows import issues as issue_workflow

from helpers import PASSWORD, auth_headers, draft_contract, signup, signup_admin


def set_user_status(client: TestClient, token: str, user_id: int, status: str):
    return client.put(f"/api/users/{user_id}/status", headers=auth_headers(token), json={"status": status})


def test_admin_lists_users_with_filters(client: TestClient):
    admin_token, _ = signup_admin(client)
    signup(client, "host@example.com", "landlord")
    signup(client, "a@example.com", "tenant")
    signup(client, "b@example.com", "tenant")

    r = client.get("/api/users", headers=auth_headers(admin_token), params={"role": "tenant"})
    assert r.status_code == 200, r.text
    assert sorted(u["email"] for u in r.json()["users"]) == ["a@example.com", "b@example.com"]

    r = client.get("/api/users", headers=auth_headers(admin_token))
    assert len(r.json()["users"]) == 4
    assert all("password_hash" not in u for u in r.json()["users"])


def test_non_admins_cannot_manage_users(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    _, tenant = signup(client, "guest@example.com", "tenant")

    r = client.get("/api/users", headers=auth_headers(landlord_token))
    assert r.status_code == 403
    assert r.json() == {"error": "Admin role required"}
    assert set_user_status(client, landlord_token, tenant["id"], "suspended").status_code == 403


def test_suspended_user_is_locked_out_until_restored(client: TestClient, events):
    admin_token, _ = signup_admin(client)
    tenant_token, tenant = signup(client, "guest@example.com", "tenant")

    r = set_user_status(client, admin_token, tenant["id"], "suspended")
    assert r.status_code == 200, r.text
    assert r.json()["user"]["status"] == "suspended"
    assert [e.payload for e in events if e.name == "user.status_changed"] == [
        {"user_id": tenant["id"], "from": "active", "to": "suspended"}
    ]

    # The token issued before the suspension stops working immediately
    r = client.get("/api/auth/me", headers=auth_headers(tenant_token))
    assert r.status_code == 403
    assert r.json() == {"error": "Account is not active"}
    r = client.post("/api/auth/login", json={"email": "guest@example.com", "password": PASSWORD})
    assert r.status_code == 403

    r = client.get("/api/users", headers=auth_headers(admin_token), params={"status": "suspended"})
    assert [u["id"] for u in r.json()["users"]] == [tenant["id"]]

    assert set_user_status(client, admin_token, tenant["id"], "active").status_code == 200
    assert client.get("/api/auth/me", headers=auth_headers(tenant_token)).status_code == 200


def test_user_status_edge_cases(client: TestClient):
    admin_token, admin = signup_admin(client)

    r = set_user_status(client, admin_token, admin["id"], "suspended")
    assert r.status_code == 403
    assert r.json() == {"error": "You cannot change the status of your own account"}
    assert set_user_status(client, admin_token, 9999, "suspended").status_code == 404
    r = set_user_status(client, admin_token, admin["id"], "banned")
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request"


def test_issue_stats_counts_by_category_status_and_severity(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    admin_token, _ = signup_admin(client)
    contract = draft_contract(client, landlord_token, tenant_token)

    def report(category: str, severity: str) -> dict:
        body = {"contract_id": contract["id"], "category": category, "severity": severity, "description": "x"}
        r = client.post("/api/issues", headers=auth_headers(tenant_token), json=body)
        assert r.status_code == 201, r.text
        return r.json()["issue"]

    report("noise", "low")
    report("noise", "high")
    leak = report("maintenance", "high")
    r = client.put(f"/api/issues/{leak['id']}/status", headers=auth_headers(admin_token), json={"status": "resolved"})
    assert r.status_code == 200, r.text

    r = client.get("/api/analytics/issues", headers=auth_headers(admin_token))
    assert r.status_code == 200, r.text
    stats = r.json()
    assert stats["stats"] == [
        {"category": "maintenance", "count": 1},
        {"category": "noise", "count": 2},
        {"category": "TOTAL", "count": 3},
    ]
    assert stats["by_status"] == {"open": 2, "resolved": 1}
    assert stats["by_severity"] == {"low": 1, "high": 2}
    assert stats["overdue"] == 0

    r = client.get("/api/analytics/issues", headers=auth_headers(tenant_token))
    assert r.status_code == 403


def test_overdue_counts_only_unresolved_issues_past_sla(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    admin_token, admin = signup_admin(client)
    contract = draft_contract(client, landlord_token, tenant_token)
    ids = []
    for sla_hours in (1, 48, 1):
        body = {"contract_id": contract["id"], "category": "safety", "description": "Broken lock", "sla_hours": sla_hours}
        r = client.post("/api/issues", headers=auth_headers(tenant_token), json=body)
        assert r.status_code == 201, r.text
        ids.append(r.json()["issue"]["id"])
    # Past its SLA too, but no longer waiting on anyone
    r = client.put(f"/api/issues/{ids[2]}/status", headers=auth_headers(admin_token), json={"status": "rejected"})
    assert r.status_code == 200, r.text

    db = SessionLocal()
    try:
        actor = db.get(models.User, admin["id"])
        later = datetime.now(timezone.utc) + timedelta(hours=2)
        stats = issue_workflow.issue_stats(SqlRepository(db), actor, now=later)
    finally:
        db.close()
    assert stats["overdue"] == 1
