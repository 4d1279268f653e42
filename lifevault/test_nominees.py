"""
lifevault/test_nominees.py

Nominee CRUD, the 100% allocation cap and the allocation summary.

Run:
    pytest lifevault/test_nominees.py -v
"""

import threading
import time
from unittest.mock import patch

from lifevault import routes_nominees
from lifevault.db import commit, execute, get_db_connection
from lifevault.utils import new_id, now_iso


def _nominee(**overrides):
    body = {
        "name": "Meera Sharma",
        "relation": "Spouse",
        "phone": "98765 11111",
        "email": "meera@example.com",
        "allocationPercentage": 60,
        "idProofType": "Aadhaar",
        "idProofNumber": "1234 5678 9012",
    }
    body.update(overrides)
    return body


def _create(client, user, **overrides):
    return client.post("/api/nominees", json=_nominee(**overrides), headers=user["headers"])


def test_create_nominee_hides_id_proof_number(client, owner):
    response = _create(client, owner)
    assert response.status_code == 201
    data = response.json()
    assert data["phone"] == "+919876511111"
    assert data["allocationPercentage"] == 60
    assert data["hasIdProof"] is True
    assert "idProofNumber" not in data


def test_allocation_cannot_exceed_100(client, owner):
    assert _create(client, owner).status_code == 201
    assert _create(client, owner, name="Kabir", email="kabir@example.com", allocationPercentage=40).status_code == 201

    response = _create(client, owner, name="Extra", email="extra@example.com", allocationPercentage=0.5)
    assert response.status_code == 400
    assert "cannot exceed 100%" in response.json()["detail"]
    assert "Current total: 100%" in response.json()["detail"]


def test_update_allocation_excludes_own_share(client, owner):
    first = _create(client, owner).json()
    _create(client, owner, name="Kabir", email="kabir@example.com", allocationPercentage=30)

    ok = client.put(f"/api/nominees/{first['id']}", json={"allocationPercentage": 70}, headers=owner["headers"])
    assert ok.status_code == 200
    assert ok.json()["allocationPercentage"] == 70

    too_much = client.put(f"/api/nominees/{first['id']}", json={"allocationPercentage": 71},
                          headers=owner["headers"])
    assert too_much.status_code == 400


def test_allocation_over_100_rejected_by_schema(client, owner):
    assert _create(client, owner, allocationPercentage=101).status_code == 422


def test_allocation_is_per_owner(client, owner, other_owner):
    assert _create(client, owner, allocationPercentage=100).status_code == 201
    assert _create(client, other_owner, allocationPercentage=100).status_code == 201


def test_list_filters_by_relation(client, owner):
    _create(client, owner)
    _create(client, owner, name="Kabir", relation="Child", email="kabir@example.com", allocationPercentage=20)

    everything = client.get("/api/nominees", headers=owner["headers"]).json()
    assert everything["total"] == 2
    assert everything["items"][0]["allocationPercentage"] == 60

    children = client.get("/api/nominees", params={"relation": "Child"}, headers=owner["headers"]).json()
    assert [n["name"] for n in children["items"]] == ["Kabir"]


def test_summary(client, owner):
    client.post("/api/assets", json={"category": "Bank", "institution": "HDFC", "accountNumber": "1",
                                     "currentValue": 600000}, headers=owner["headers"])
    client.post("/api/trading-accounts", json={"brokerName": "Zerodha", "accountNumber": "Z1",
                                               "currentValue": 400000}, headers=owner["headers"])
    _create(client, owner)
    _create(client, owner, name="Kabir", email="kabir@example.com", allocationPercentage=25)

    summary = client.get("/api/nominees/summary", headers=owner["headers"]).json()
    assert summary["totalNominees"] == 2
    assert summary["totalAllocation"] == 85
    assert summary["unallocated"] == 15
    assert summary["netWorth"] == 1000000
    amounts = {n["name"]: n["amount"] for n in summary["nomineeDistribution"]}
    assert amounts == {"Meera Sharma": 600000, "Kabir": 250000}


def test_other_owner_gets_404(client, owner, other_owner):
    nominee = _create(client, owner).json()
    assert client.get(f"/api/nominees/{nominee['id']}", headers=other_owner["headers"]).status_code == 404
    assert client.delete(f"/api/nominees/{nominee['id']}", headers=other_owner["headers"]).status_code == 404


def test_delete_clears_trading_link(client, owner):
    nominee = _create(client, owner).json()
    account = client.post("/api/trading-accounts", json={"brokerName": "Zerodha", "accountNumber": "Z1",
                                                         "currentValue": 1000, "nomineeId": nominee["id"]},
                          headers=owner["headers"]).json()
    assert account["nominee"]["id"] == nominee["id"]

    assert client.delete(f"/api/nominees/{nominee['id']}", headers=owner["headers"]).status_code == 204
    refreshed = client.get(f"/api/trading-accounts/{account['id']}", headers=owner["headers"]).json()
    assert refreshed["nominee"] is None


def test_delete_blocked_by_open_claim(client, owner, make_user):
    nominee = _create(client, owner).json()
    claimant = make_user("nominee", phone="+919876511111", email="meera@example.com", pin=None)
    now = now_iso()
    with get_db_connection() as conn:
        execute(
            conn,
            """
            INSERT INTO vault_requests (id, nominee_id, owner_id, submitted_by, nominee_name, relation_to_deceased,
                                        phone_number, email, status, created_at, updated_at)
            VALUES (:id, :nominee_id, :owner_id, :submitted_by, 'Meera Sharma', 'Spouse',
                    '+919876511111', 'meera@example.com', 'pending', :now, :now)
            """,
            {"id": new_id(), "nominee_id": nominee["id"], "owner_id": owner["id"],
             "submitted_by": claimant["id"], "now": now},
        )
        commit(conn)

    response = client.delete(f"/api/nominees/{nominee['id']}", headers=owner["headers"])
    assert response.status_code == 409


def test_list_pages_with_full_total(client, owner):
    for i, pct in enumerate((40, 30, 20)):
        _create(client, owner, name=f"Nominee {i}", email=f"n{i}@example.com", allocationPercentage=pct)

    page = client.get("/api/nominees", params={"limit": 2, "offset": 1}, headers=owner["headers"]).json()
    assert page["total"] == 3
    assert [n["allocationPercentage"] for n in page["items"]] == [30, 20]

    assert client.get("/api/nominees", params={"limit": 0}, headers=owner["headers"]).status_code == 422


def test_concurrent_creates_cannot_exceed_100(client, owner):
    real_total = routes_nominees.allocated_total

    def slow_total(*args, **kwargs):
        total = real_total(*args, **kwargs)
        # Hold the read-then-insert window open for the other request
        time.sleep(0.2)
        return total

    barrier = threading.Barrier(2)
    statuses = []

    def submit(name, email):
        barrier.wait(timeout=10)
        statuses.append(_create(client, owner, name=name, email=email).status_code)

    with patch("lifevault.routes_nominees.allocated_total", side_effect=slow_total):
        threads = [
            threading.Thread(target=submit, args=("Meera Sharma", "meera@example.com")),
            threading.Thread(target=submit, args=("Kabir Sharma", "kabir@example.com")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

    assert sorted(statuses) == [201, 400]
    summary = client.get("/api/nominees/summary", headers=owner["headers"]).json()
    assert summary["totalNominees"] == 1
    assert summary["totalAllocation"] == 60
