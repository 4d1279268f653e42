"""
lifevault/test_dashboard.py

Role-based dashboard statistics and the batch endpoint.

Run:
    pytest lifevault/test_dashboard.py -v
"""

from lifevault.models import ALLOCATION_COLORS
from lifevault.routes_dashboard import asset_allocation


def _seed_owner(client, owner):
    for category, institution, value in (
        ("Bank", "SBI", 200000),
        ("Bank", "HDFC", 100000),
        ("LIC", "LIC", 500000),
        ("PF", "EPFO", 200000),
    ):
        client.post("/api/assets", json={"category": category, "institution": institution,
                                         "accountNumber": institution, "currentValue": value},
                    headers=owner["headers"])
    client.post("/api/trading-accounts", json={"brokerName": "Zerodha", "accountNumber": "Z",
                                               "currentValue": 250000}, headers=owner["headers"])
    return client.post("/api/nominees", json={"name": "Meera", "relation": "Spouse", "phone": "+919811100000",
                                              "email": "meera@example.com", "allocationPercentage": 60},
                       headers=owner["headers"]).json()


def test_asset_allocation_groups_and_sorts():
    rows = [
        {"category": "Bank", "current_value": 100.0},
        {"category": "LIC", "current_value": 300.0},
        {"category": "Bank", "current_value": 100.0},
    ]
    result = asset_allocation(rows)
    assert [r["name"] for r in result] == ["LIC", "Bank"]
    assert [r["value"] for r in result] == [60, 40]
    assert result[1]["amount"] == 200
    assert result[0]["color"] == ALLOCATION_COLORS[0]


def test_asset_allocation_empty():
    assert asset_allocation([]) == []


def test_owner_stats(client, owner):
    _seed_owner(client, owner)
    stats = client.get("/api/dashboard/stats", headers=owner["headers"]).json()
    assert stats["role"] == "owner"
    assert stats["totalAssets"] == 4
    assert stats["totalNominees"] == 1
    assert stats["totalTradingAccounts"] == 1
    assert stats["totalValue"] == 1000000
    assert stats["tradingValue"] == 250000
    assert stats["netWorth"] == 1250000
    assert stats["totalAllocation"] == 60
    assert stats["assetAllocation"][0] == {"name": "LIC", "value": 50, "amount": 500000, "color": ALLOCATION_COLORS[0]}
    assert stats["nomineeDistribution"][0]["name"] == "Meera (Spouse)"
    assert stats["nomineeDistribution"][0]["amount"] == 750000
    assert stats["recentActivity"]


def test_owner_stats_empty(client, owner):
    stats = client.get("/api/dashboard/stats", headers=owner["headers"]).json()
    assert stats["totalValue"] == 0
    assert stats["assetAllocation"] == []


def test_nominee_stats(client, owner, make_user, admin):
    nominee = _seed_owner(client, owner)
    claimant = make_user("nominee", phone="+919811100000", email="meera@example.com", pin=None)
    request = client.post("/api/vault/requests",
                          json={"nomineeId": nominee["id"], "relationToDeceased": "Wife",
                                "phoneNumber": "+919811100000", "email": "meera@example.com"},
                          headers=claimant["headers"]).json()

    before = client.get("/api/dashboard/stats", headers=claimant["headers"]).json()
    assert before["role"] == "nominee"
    assert before["linkedOwners"] == 1
    assert before["nominations"] == [{"nomineeId": nominee["id"], "ownerName": "Owner One",
                                      "relation": "Spouse", "allocationPercentage": 60}]
    assert before["vaultRequests"]["pending"] == 1
    assert before["accessibleAssets"] == 0

    client.post(f"/api/vault/requests/{request['id']}/approve", headers=admin["headers"])
    after = client.get("/api/dashboard/stats", headers=claimant["headers"]).json()
    assert after["vaultRequests"]["verified"] == 1
    assert after["accessibleAssets"] == 5
    assert after["accessibleValue"] == 750000


def test_admin_stats(client, owner, admin):
    _seed_owner(client, owner)
    stats = client.get("/api/dashboard/stats", headers=admin["headers"]).json()
    assert stats["role"] == "admin"
    assert stats["adminStats"]["totalRequests"] == 0
    assert stats["users"]["owner"] == 1
    assert stats["users"]["admin"] == 1
    assert stats["documents"] == {"total": 0, "valid": 0, "invalid": 0}


def test_batch(client, owner):
    _seed_owner(client, owner)
    batch = client.get("/api/dashboard/batch", headers=owner["headers"]).json()
    assert batch["stats"]["totalAssets"] == 4
    assert len(batch["assets"]) == 4
    assert batch["assets"][0]["accountNumber"]
    assert len(batch["nominees"]) == 1
    assert len(batch["tradingAccounts"]) == 1


def test_list_aliases(client, owner):
    _seed_owner(client, owner)
    assert client.get("/api/dashboard/assets", headers=owner["headers"]).json()["total"] == 4
    assert client.get("/api/dashboard/nominees", headers=owner["headers"]).json()["total"] == 1
    assert client.get("/api/dashboard/trading-accounts", headers=owner["headers"]).json()["total"] == 1


def test_batch_not_for_nominees(client, make_user):
    nominee = make_user("nominee", pin=None)
    assert client.get("/api/dashboard/batch", headers=nominee["headers"]).status_code == 403


def test_stats_requires_auth(client):
    assert client.get("/api/dashboard/stats").status_code in (401, 403)
