"""
lifevault/test_assets.py

Asset CRUD and owner isolation tests.
Foreign rows answer 404 (not 403) so their existence is not leaked.

Run:
    pytest lifevault/test_assets.py -v
"""

import pytest

from lifevault.db import fetch_all, get_db_connection


def _asset(**overrides):
    body = {
        "category": "Bank",
        "institution": "State Bank of India",
        "accountNumber": "XXXX1234",
        "currentValue": 250000,
        "notes": "Salary account",
        "documents": ["owner/statement.pdf"],
    }
    body.update(overrides)
    return body


@pytest.fixture
def asset(client, owner):
    response = client.post("/api/assets", json=_asset(), headers=owner["headers"])
    assert response.status_code == 201
    return response.json()


class TestAssetCrud:
    def test_create_returns_camel_case(self, asset):
        assert asset["accountNumber"] == "XXXX1234"
        assert asset["currentValue"] == 250000
        assert asset["status"] == "Active"
        assert asset["documents"] == ["owner/statement.pdf"]
        assert asset["createdAt"].endswith("Z")

    def test_create_writes_audit_log(self, client, asset, owner):
        with get_db_connection() as conn:
            logs = fetch_all(conn, "SELECT * FROM audit_logs WHERE resource = 'ASSET' AND action = 'CREATE'")
        assert len(logs) == 1
        assert logs[0]["resource_id"] == asset["id"]
        assert logs[0]["user_id"] == owner["id"]

    def test_list_and_filter(self, client, owner, asset):
        client.post("/api/assets", json=_asset(category="LIC", institution="LIC of India"), headers=owner["headers"])

        everything = client.get("/api/assets", headers=owner["headers"]).json()
        assert everything["total"] == 2

        lic = client.get("/api/assets", params={"category": "LIC"}, headers=owner["headers"]).json()
        assert lic["total"] == 1
        assert lic["items"][0]["institution"] == "LIC of India"

        search = client.get("/api/assets", params={"q": "salary"}, headers=owner["headers"]).json()
        assert [a["id"] for a in search["items"]] == [asset["id"]]

    def test_pagination(self, client, owner):
        for i in range(3):
            client.post("/api/assets", json=_asset(accountNumber=f"ACC-{i}"), headers=owner["headers"])
        page = client.get("/api/assets", params={"limit": 2, "offset": 0}, headers=owner["headers"]).json()
        assert page["total"] == 3
        assert len(page["items"]) == 2

    def test_partial_update(self, client, owner, asset):
        response = client.put(f"/api/assets/{asset['id']}", json={"currentValue": 300000, "status": "Matured"},
                              headers=owner["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["currentValue"] == 300000
        assert data["status"] == "Matured"
        assert data["institution"] == "State Bank of India"

    def test_update_rejects_null_required(self, client, owner, asset):
        response = client.put(f"/api/assets/{asset['id']}", json={"currentValue": None}, headers=owner["headers"])
        assert response.status_code == 400

    def test_delete(self, client, owner, asset):
        response = client.delete(f"/api/assets/{asset['id']}", headers=owner["headers"])
        assert response.status_code == 204
        assert client.get(f"/api/assets/{asset['id']}", headers=owner["headers"]).status_code == 404


class TestAssetValidation:
    def test_unknown_category(self, client, owner):
        response = client.post("/api/assets", json=_asset(category="Gold"), headers=owner["headers"])
        assert response.status_code == 422

    def test_negative_value(self, client, owner):
        response = client.post("/api/assets", json=_asset(currentValue=-1), headers=owner["headers"])
        assert response.status_code == 422

    def test_blank_institution(self, client, owner):
        response = client.post("/api/assets", json=_asset(institution="   "), headers=owner["headers"])
        assert response.status_code == 422


class TestAssetIsolation:
    def test_other_owner_cannot_see(self, client, other_owner, asset):
        listing = client.get("/api/assets", headers=other_owner["headers"]).json()
        assert listing["total"] == 0
        assert client.get(f"/api/assets/{asset['id']}", headers=other_owner["headers"]).status_code == 404

    def test_other_owner_cannot_update_or_delete(self, client, owner, other_owner, asset):
        update = client.put(f"/api/assets/{asset['id']}", json={"currentValue": 1}, headers=other_owner["headers"])
        assert update.status_code == 404
        delete = client.delete(f"/api/assets/{asset['id']}", headers=other_owner["headers"])
        assert delete.status_code == 404

        still = client.get(f"/api/assets/{asset['id']}", headers=owner["headers"]).json()
        assert still["currentValue"] == 250000

    def test_nominee_role_cannot_manage_assets(self, client, make_user):
        nominee = make_user("nominee")
        response = client.post("/api/assets", json=_asset(), headers=nominee["headers"])
        assert response.status_code == 403

    def test_user_id_in_body_is_ignored(self, client, owner, other_owner):
        response = client.post("/api/assets", json=_asset(userId=other_owner["id"]), headers=owner["headers"])
        assert response.status_code == 201
        assert client.get("/api/assets", headers=other_owner["headers"]).json()["total"] == 0
