import uuid

import pytest
from fastapi.testclient import TestClient

from request_desk.core.rbac import get_current_user
from request_desk.main import app
from request_desk.models.user import SessionUser


PASSWORD = "Passw0rd!@#"

ADMIN = SessionUser(id=1, name="Administrator", username="admin", isAdmin=True)
MEMBER = SessionUser(id=42, name="Member", username="member", isAdmin=False)


def _new_request(**overrides):
    payload = {
        "requestorName": "Dana Reyes",
        "requestorEmail": "dana@example.com",
        "teamName": "Finance Team",
        "categoryName": "val1",
        "requestDates": "2024-01-01:2024-01-03",
        "acctNumber": "ACC900",
        "requestName": "Vendor payout",
        "currency": "USD",
        "amount": 5000,
        "adjustment": 0,
        "userId": 1,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def as_user():
    def _install(user):
        app.dependency_overrides[get_current_user] = lambda: user

    try:
        yield _install
    finally:
        app.dependency_overrides.clear()


def test_health_reports_primary_database():
    with TestClient(app) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["database"] == "SQLite Connected"
    assert body["users"] >= 1
    assert "x-process-time" in response.headers


def test_registration_requires_admin_approval_before_login():
    username = f"pytest_{uuid.uuid4().hex[:8]}"
    registration = {
        "name": "Pending Person",
        "username": username,
        "email": f"{username}@example.com",
        "password": PASSWORD,
        "team": "Finance Team",
    }

    with TestClient(app) as client:
        first = client.post("/api/auth/register", json=registration)
        assert first.status_code == 200
        assert first.json()["user"]["status"] == "pending"
        user_id = first.json()["user"]["id"]

        duplicate = client.post("/api/auth/register", json=registration)
        assert duplicate.status_code == 409
        assert duplicate.json() == {"success": False, "error": "Username already exists", "code": "conflict"}

        pending = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        assert pending.status_code == 403
        assert pending.json()["code"] == "account_pending"

        admin_login = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
        assert admin_login.status_code == 200
        assert admin_login.json()["user"]["isAdmin"] is True

        approved = client.put(f"/api/admin/users/{user_id}/status", json={"status": "approved"})
        assert approved.status_code == 200
        assert approved.json()["message"] == "User status updated to approved"

        listed = client.get("/api/admin/users").json()["users"]
        assert any(row["username"] == username and row["status"] == "approved" for row in listed)

        assert client.post("/api/auth/logout").json() == {"success": True}
        assert client.get("/api/admin/users").status_code == 401

        login = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        assert login.status_code == 200
        assert login.json()["user"]["username"] == username

        wrong = client.post("/api/auth/login", json={"username": username, "password": "nope-nope"})
        assert wrong.status_code == 401
        assert wrong.json()["code"] == "invalid_credentials"


def test_login_requires_both_fields():
    with TestClient(app) as client:
        response = client.post("/api/auth/login", json={"username": "admin"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_admin_routes_reject_missing_or_non_admin_session(as_user):
    with TestClient(app) as client:
        anonymous = client.get("/api/admin/analytics")
        assert anonymous.status_code == 401
        assert anonymous.json()["code"] == "not_authenticated"

        as_user(MEMBER)
        forbidden = client.get("/api/admin/analytics")
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "forbidden"


def test_admin_status_update_flow(as_user):
    as_user(ADMIN)

    with TestClient(app) as client:
        created = client.post("/api/requests", json=_new_request())
        assert created.status_code == 201
        request_id = created.json()["requestId"]

        updated = client.put(
            f"/api/admin/requests/{request_id}/status",
            json={"status": "processing", "admin_comments": "Picked up"},
        )
        assert updated.status_code == 200
        assert updated.json() == {
            "success": True,
            "message": "Request status updated to processing",
            "admin_comments": "Picked up",
        }

        invalid = client.put(f"/api/admin/requests/{request_id}/status", json={"status": "archived"})
        assert invalid.status_code == 400
        assert invalid.json()["code"] == "validation_error"

        missing = client.put("/api/admin/requests/REQ0000000000000DEADBEEF/status", json={"status": "completed"})
        assert missing.status_code == 404

        history = client.get(f"/api/requests/{request_id}/history").json()["data"]
        assert [entry["new_status"] for entry in history] == ["processing", "submitted"]
        assert history[0]["changed_by"] == "admin"


def test_legacy_changed_by_names_the_actor(as_user):
    as_user(ADMIN)

    with TestClient(app) as client:
        request_id = client.post("/api/requests", json=_new_request()).json()["requestId"]
        client.put(
            f"/api/admin/requests/{request_id}/status",
            json={"status": "rejected", "changedBy": "Ops Desk", "notes": "Wrong account"},
        )
        history = client.get(f"/api/requests/{request_id}/history").json()["data"]

    assert history[0]["new_status"] == "failed"
    assert history[0]["changed_by"] == "Ops Desk"
    assert history[0]["notes"] == "Wrong account"


def test_create_request_validation_errors():
    with TestClient(app) as client:
        bad_amount = client.post("/api/requests", json=_new_request(amount=-5))
        huge_amount = client.post("/api/requests", json=_new_request(amount=10**400))
        scalar_dates = client.post("/api/requests", json=_new_request(requestDates=5))
        not_json = client.post("/api/requests", content="not json", headers={"content-type": "application/json"})

    assert bad_amount.status_code == 400
    assert bad_amount.json()["code"] == "validation_error"
    assert not_json.status_code == 400
    assert huge_amount.status_code == 400
    assert scalar_dates.status_code == 400
    assert scalar_dates.json()["code"] == "validation_error"


def test_listing_requests_requires_username_for_non_admins():
    with TestClient(app) as client:
        missing = client.get("/api/requests")
        unknown = client.get("/api/requests", params={"username": "ghost"})
        everything = client.get("/api/requests", params={"isAdmin": "true"})

    assert missing.status_code == 400
    assert unknown.status_code == 404
    assert everything.status_code == 200
    assert isinstance(everything.json()["data"], list)


def test_admin_analytics_endpoints(as_user):
    as_user(ADMIN)

    with TestClient(app) as client:
        client.post("/api/requests", json=_new_request())
        overview = client.get("/api/admin/analytics").json()
        monthly = client.get("/api/admin/trends").json()
        daily = client.get("/api/admin/trends", params={"period": "daily"}).json()
        weekly = client.get("/api/admin/trends", params={"period": "weekly"})
        summary = client.get("/api/admin/status-history").json()
        activity = client.get("/api/admin/recent-activity").json()
        stats = client.get("/api/statistics").json()["data"]

    assert overview["requests"]["total"] >= 1
    assert {"usersBreakdown", "requestsBreakdown", "status_changes"} <= set(overview)
    assert len(monthly) == 6 and "month" in monthly[0]
    assert len(daily) == 30 and "day" in daily[0]
    assert weekly.status_code == 400
    assert sum(row["count"] for row in summary) == stats["total"]
    assert 1 <= len(activity) <= 10
    assert stats["total"] == overview["requests"]["total"]


def test_admin_user_management(as_user):
    username = f"pytest_{uuid.uuid4().hex[:8]}"

    with TestClient(app) as client:
        user_id = client.post(
            "/api/auth/register",
            json={
                "name": "Managed User",
                "username": username,
                "email": f"{username}@example.com",
                "password": PASSWORD,
                "team": "Support",
            },
        ).json()["user"]["id"]

        as_user(ADMIN)
        assert client.put(f"/api/admin/users/{user_id}/role", json={"isAdmin": True}).status_code == 200
        assert client.put(f"/api/admin/users/{user_id}/password", json={"password": "123"}).status_code == 400
        assert client.put(f"/api/admin/users/{user_id}/password", json={"password": "new-secret"}).status_code == 200
        assert client.put(f"/api/admin/users/{user_id}", json={"team": "Legal"}).status_code == 200
        assert client.put(f"/api/admin/users/{user_id}", json={}).status_code == 400
        assert client.put(f"/api/admin/users/{user_id}/status", json={"status": "archived"}).status_code == 400
        assert client.put("/api/admin/users/999999/status", json={"status": "approved"}).status_code == 404

        listed = {row["username"]: row for row in client.get("/api/admin/users").json()["users"]}
        assert listed[username]["isAdmin"] == 1
        assert listed[username]["team"] == "Legal"

        assert client.delete("/api/admin/users/1").status_code == 400
        assert client.delete(f"/api/admin/users/{user_id}").status_code == 200
        assert client.delete(f"/api/admin/users/{user_id}").status_code == 404


def test_profile_update_uses_session_user():
    username = f"pytest_{uuid.uuid4().hex[:8]}"

    with TestClient(app) as client:
        user_id = client.post(
            "/api/auth/register",
            json={
                "name": "Profile User",
                "username": username,
                "email": f"{username}@example.com",
                "password": PASSWORD,
                "team": "Support",
            },
        ).json()["user"]["id"]
        client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
        client.put(f"/api/admin/users/{user_id}/status", json={"status": "approved"})
        client.post("/api/auth/logout")

        client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        response = client.put(
            "/api/users/profile",
            json={"username": "someone.else", "description": "Handles refunds"},
        )
        client.post("/api/auth/logout")
        unknown = client.put("/api/users/profile", json={"username": "ghost", "description": "x"})

    assert response.status_code == 200
    assert response.json()["user"]["username"] == username
    assert response.json()["user"]["description"] == "Handles refunds"
    assert unknown.status_code == 404
