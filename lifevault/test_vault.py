"""
lifevault/test_vault.py

Vault request workflow: submission by a linked nominee, admin review
transitions, withdrawal and access to an opened vault.

Run:
    pytest lifevault/test_vault.py -v
"""

from unittest.mock import patch

import pytest

from lifevault.db import fetch_all, get_db_connection

NOMINEE_PHONE = "+919876522222"
NOMINEE_EMAIL = "ravi@example.com"


@pytest.fixture
def estate(client, owner, make_user):
    """Owner with holdings and one nominee record, plus the matching nominee user."""
    client.post("/api/assets", json={"category": "Bank", "institution": "SBI", "accountNumber": "S-1",
                                     "currentValue": 700000}, headers=owner["headers"])
    client.post("/api/trading-accounts", json={"brokerName": "Zerodha", "accountNumber": "Z-1",
                                               "currentValue": 300000}, headers=owner["headers"])
    nominee = client.post(
        "/api/nominees",
        json={"name": "Ravi Verma", "relation": "Child", "phone": NOMINEE_PHONE, "email": NOMINEE_EMAIL,
              "allocationPercentage": 40},
        headers=owner["headers"],
    ).json()
    claimant = make_user("nominee", name="Ravi Verma", phone=NOMINEE_PHONE, email=NOMINEE_EMAIL, pin=None)
    return {"owner": owner, "nominee": nominee, "claimant": claimant}


def _submit(client, estate, **overrides):
    body = {
        "nomineeId": estate["nominee"]["id"],
        "relationToDeceased": "Son",
        "phoneNumber": NOMINEE_PHONE,
        "email": NOMINEE_EMAIL,
        "deathCertificateUrl": "/api/files/x/certificate.pdf",
    }
    body.update(overrides)
    return client.post("/api/vault/requests", json=body, headers=estate["claimant"]["headers"])


@pytest.fixture
def pending(client, estate):
    response = _submit(client, estate)
    assert response.status_code == 201
    return response.json()


class TestSubmit:
    def test_submit_creates_pending_request(self, pending, estate):
        assert pending["status"] == "pending"
        assert pending["ownerId"] == estate["owner"]["id"]
        assert pending["submittedBy"] == estate["claimant"]["id"]
        assert pending["nomineeName"] == "Ravi Verma"
        assert pending["nominee"]["relation"] == "Child"

    def test_duplicate_active_request_conflicts(self, client, estate, pending):
        assert _submit(client, estate).status_code == 409

    def test_duplicate_conflicts_when_count_check_is_raced(self, client, estate, pending):
        # The other request is not yet visible to the count query
        with patch("lifevault.routes_vault.fetch_value", return_value=0):
            response = _submit(client, estate)
        assert response.status_code == 409
        with get_db_connection() as conn:
            rows = fetch_all(conn, "SELECT id FROM vault_requests WHERE nominee_id = :id",
                             {"id": estate["nominee"]["id"]})
        assert [r["id"] for r in rows] == [pending["id"]]

    def test_new_request_allowed_after_rejection(self, client, estate, pending, admin):
        client.post(f"/api/vault/requests/{pending['id']}/reject", json={"adminNotes": "Unreadable"},
                    headers=admin["headers"])
        assert _submit(client, estate).status_code == 201

    def test_unlinked_nominee_user_gets_404(self, client, estate, make_user):
        stranger = make_user("nominee", phone="+919876533333", email="stranger@example.com", pin=None)
        response = client.post(
            "/api/vault/requests",
            json={"nomineeId": estate["nominee"]["id"], "relationToDeceased": "Son",
                  "phoneNumber": "+919876533333", "email": "stranger@example.com"},
            headers=stranger["headers"],
        )
        assert response.status_code == 404

    def test_owner_cannot_submit(self, client, estate):
        response = client.post(
            "/api/vault/requests",
            json={"nomineeId": estate["nominee"]["id"], "relationToDeceased": "Son",
                  "phoneNumber": NOMINEE_PHONE, "email": NOMINEE_EMAIL},
            headers=estate["owner"]["headers"],
        )
        assert response.status_code == 403

    def test_foreign_document_validation_rejected(self, client, estate):
        response = _submit(client, estate, documentValidationId="not-mine")
        assert response.status_code == 400


class TestVisibility:
    def test_each_role_sees_its_scope(self, client, estate, pending, admin, other_owner):
        owner_view = client.get("/api/vault/requests", headers=estate["owner"]["headers"]).json()
        assert owner_view["total"] == 1

        claimant_view = client.get("/api/vault/requests", headers=estate["claimant"]["headers"]).json()
        assert claimant_view["total"] == 1

        admin_view = client.get("/api/vault/requests", params={"status": "pending"},
                                headers=admin["headers"]).json()
        assert admin_view["total"] == 1

        other_view = client.get("/api/vault/requests", headers=other_owner["headers"]).json()
        assert other_view["total"] == 0
        assert client.get(f"/api/vault/requests/{pending['id']}",
                          headers=other_owner["headers"]).status_code == 404


class TestReview:
    def test_review_path_to_verified(self, client, pending, admin):
        url = f"/api/vault/requests/{pending['id']}"
        review = client.put(url, json={"status": "under_review"}, headers=admin["headers"])
        assert review.status_code == 200
        assert review.json()["status"] == "under_review"
        assert review.json()["reviewedBy"] == admin["id"]

        approved = client.post(f"{url}/approve", json={"adminNotes": "Certificate checked"},
                               headers=admin["headers"])
        assert approved.status_code == 200
        data = approved.json()
        assert data["status"] == "verified"
        assert data["vaultOpenedAt"]
        assert data["adminNotes"] == "Certificate checked"

    def test_approve_without_body(self, client, pending, admin):
        response = client.post(f"/api/vault/requests/{pending['id']}/approve", headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "verified"

    def test_reject_requires_notes(self, client, pending, admin):
        url = f"/api/vault/requests/{pending['id']}/reject"
        assert client.post(url, json={}, headers=admin["headers"]).status_code == 400
        rejected = client.post(url, json={"adminNotes": "Certificate unreadable"}, headers=admin["headers"])
        assert rejected.status_code == 200
        assert rejected.json()["status"] == "rejected"

    def test_terminal_states_cannot_change(self, client, pending, admin):
        url = f"/api/vault/requests/{pending['id']}"
        client.post(f"{url}/approve", headers=admin["headers"])
        response = client.put(url, json={"status": "rejected", "adminNotes": "Too late"}, headers=admin["headers"])
        assert response.status_code == 409

    def test_cannot_move_back_to_pending(self, client, pending, admin):
        url = f"/api/vault/requests/{pending['id']}"
        client.put(url, json={"status": "under_review"}, headers=admin["headers"])
        assert client.put(url, json={"status": "pending"}, headers=admin["headers"]).status_code == 409

    def test_non_admin_cannot_review(self, client, estate, pending):
        url = f"/api/vault/requests/{pending['id']}/approve"
        assert client.post(url, headers=estate["owner"]["headers"]).status_code == 403
        assert client.post(url, headers=estate["claimant"]["headers"]).status_code == 403

    def test_review_is_audited(self, client, pending, admin):
        client.post(f"/api/vault/requests/{pending['id']}/approve", headers=admin["headers"])
        with get_db_connection() as conn:
            logs = fetch_all(conn, "SELECT * FROM audit_logs WHERE action = 'VAULT_APPROVE'")
        assert len(logs) == 1
        assert logs[0]["user_id"] == admin["id"]

    def test_unknown_request(self, client, admin):
        response = client.put("/api/vault/requests/missing", json={"status": "verified"}, headers=admin["headers"])
        assert response.status_code == 404


class TestWithdraw:
    def test_withdraw_pending(self, client, estate, pending):
        url = f"/api/vault/requests/{pending['id']}"
        assert client.delete(url, headers=estate["claimant"]["headers"]).status_code == 204
        assert client.get(url, headers=estate["claimant"]["headers"]).status_code == 404
        # A new request may be filed after withdrawal
        assert _submit(client, estate).status_code == 201

    def test_withdraw_after_review_conflicts(self, client, estate, pending, admin):
        url = f"/api/vault/requests/{pending['id']}"
        client.put(url, json={"status": "under_review"}, headers=admin["headers"])
        assert client.delete(url, headers=estate["claimant"]["headers"]).status_code == 409


class TestContents:
    def test_contents_locked_until_verified(self, client, estate, pending):
        url = f"/api/vault/requests/{pending['id']}/contents"
        response = client.get(url, headers=estate["claimant"]["headers"])
        assert response.status_code == 403

    def test_contents_after_verification(self, client, estate, pending, admin):
        client.post(f"/api/vault/requests/{pending['id']}/approve", headers=admin["headers"])
        response = client.get(f"/api/vault/requests/{pending['id']}/contents",
                              headers=estate["claimant"]["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["owner"]["id"] == estate["owner"]["id"]
        assert data["allocationPercentage"] == 40
        assert data["netWorth"] == 1000000
        assert data["allocatedAmount"] == 400000
        assert len(data["assets"]) == 1
        assert len(data["tradingAccounts"]) == 1

    def test_contents_only_for_submitter(self, client, estate, pending, admin):
        client.post(f"/api/vault/requests/{pending['id']}/approve", headers=admin["headers"])
        other = client.get(f"/api/vault/requests/{pending['id']}/contents", headers=estate["owner"]["headers"])
        assert other.status_code == 403
