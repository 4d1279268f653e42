"""
lifevault/test_admin.py

Admin creation, user listing/activation and audit log browsing.

Run:
    pytest lifevault/test_admin.py -v
"""

from lifevault.db import fetch_one, get_db_connection

NEW_ADMIN = {"name": "Second Admin", "phone": "+919811199999", "email": "admin2@test.com", "pin": "9999"}


class TestCreateAdmin:
    def test_super_admin_creates_admin(self, client, super_admin):
        response = client.post("/api/admin/create", json=NEW_ADMIN, headers=super_admin["headers"])
        assert response.status_code == 201
        assert response.json()["role"] == "admin"

        with get_db_connection() as conn:
            row = fetch_one(conn, "SELECT pin_hash FROM users WHERE phone = :phone", {"phone": NEW_ADMIN["phone"]})
        assert row["pin_hash"] != "9999"

    def test_admin_cannot_create_admin(self, client, admin):
        response = client.post("/api/admin/create", json=NEW_ADMIN, headers=admin["headers"])
        assert response.status_code == 403

    def test_duplicate_phone(self, client, super_admin, owner):
        body = dict(NEW_ADMIN, phone=owner["phone"])
        response = client.post("/api/admin/create", json=body, headers=super_admin["headers"])
        assert response.status_code == 409


class TestUsers:
    def test_list_users_with_role_filter(self, client, admin, owner, other_owner):
        everyone = client.get("/api/admin/users", headers=admin["headers"]).json()
        assert everyone["total"] == 3
        assert all("pinHash" not in u for u in everyone["items"])

        owners = client.get("/api/admin/users", params={"role": "owner"}, headers=admin["headers"]).json()
        assert owners["total"] == 2
        assert {u["role"] for u in owners["items"]} == {"owner"}

    def test_owner_cannot_list_users(self, client, owner):
        assert client.get("/api/admin/users", headers=owner["headers"]).status_code == 403

    def test_deactivate_blocks_access(self, client, admin, owner):
        response = client.put(f"/api/admin/users/{owner['id']}/status", json={"isActive": False},
                              headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["isActive"] is False

        me = client.get("/api/auth/me", headers=owner["headers"])
        assert me.status_code == 403

        client.put(f"/api/admin/users/{owner['id']}/status", json={"isActive": True}, headers=admin["headers"])
        assert client.get("/api/auth/me", headers=owner["headers"]).status_code == 200

    def test_deactivate_revokes_sessions(self, client, admin):
        session = client.post("/api/auth/register", json={"name": "Temp", "phone": "+919811155555",
                                                          "email": "temp@test.com", "pin": "1111"}).json()
        client.put(f"/api/admin/users/{session['user']['id']}/status", json={"isActive": False},
                   headers=admin["headers"])
        with get_db_connection() as conn:
            row = fetch_one(conn, "SELECT revoked_at FROM auth_sessions WHERE id = :id", {"id": session["sessionId"]})
        assert row["revoked_at"]

    def test_cannot_deactivate_self(self, client, admin):
        response = client.put(f"/api/admin/users/{admin['id']}/status", json={"isActive": False},
                              headers=admin["headers"])
        assert response.status_code == 400

    def test_admin_cannot_touch_other_admins(self, client, admin, super_admin):
        response = client.put(f"/api/admin/users/{super_admin['id']}/status", json={"isActive": False},
                              headers=admin["headers"])
        assert response.status_code == 403

    def test_unknown_user(self, client, admin):
        response = client.put("/api/admin/users/missing/status", json={"isActive": False}, headers=admin["headers"])
        assert response.status_code == 404


class TestAuditLogs:
    def test_filters(self, client, admin, owner):
        client.post("/api/assets", json={"category": "Bank", "institution": "SBI", "accountNumber": "1",
                                         "currentValue": 10}, headers=owner["headers"])
        client.post("/api/nominees", json={"name": "N", "relation": "Child", "phone": "+919811166666",
                                           "email": "n@test.com", "allocationPercentage": 10},
                    headers=owner["headers"])

        logs = client.get("/api/admin/audit-logs", params={"userId": owner["id"]}, headers=admin["headers"]).json()
        assert logs["total"] == 2
        assert logs["logs"][0]["userName"] == "Owner One"

        assets = client.get("/api/admin/audit-logs", params={"resource": "ASSET"}, headers=admin["headers"]).json()
        assert assets["total"] == 1
        assert assets["logs"][0]["action"] == "CREATE"

    def test_owner_cannot_read_audit_logs(self, client, owner):
        assert client.get("/api/admin/audit-logs", headers=owner["headers"]).status_code == 403


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["database"] == "sqlite"
    assert body["timestamp"].endswith("Z")
