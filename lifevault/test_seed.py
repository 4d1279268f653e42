"""
lifevault/test_seed.py

The seed script creates the super admin and demo data exactly once.
"""

from lifevault.db import commit, fetch_all, fetch_value, get_db_connection
from lifevault.seed import seed_demo_data, seed_super_admin


def _run_seed():
    with get_db_connection() as conn:
        seed_super_admin(conn)
        owner_id = seed_demo_data(conn)
        commit(conn)
    return owner_id


def test_seed_is_idempotent():
    first = _run_seed()
    second = _run_seed()
    assert first == second

    with get_db_connection() as conn:
        roles = {r["role"]: r["n"] for r in fetch_all(conn, "SELECT role, COUNT(*) AS n FROM users GROUP BY role")}
        assets = fetch_value(conn, "SELECT COUNT(*) FROM assets WHERE user_id = :id", {"id": first})
        allocation = fetch_value(conn, "SELECT SUM(allocation_percentage) FROM nominees WHERE user_id = :id",
                                 {"id": first})
        trading = fetch_value(conn, "SELECT COUNT(*) FROM trading_accounts WHERE user_id = :id", {"id": first})

    assert roles == {"super_admin": 1, "owner": 1, "nominee": 1}
    assert assets == 4
    assert allocation == 100
    assert trading == 2


def test_demo_owner_can_log_in(client):
    _run_seed()
    otp = client.post("/api/auth/verify-otp", json={"phone": "+91 9876543210", "otp": "123456"}).json()
    response = client.post("/api/auth/verify-pin",
                           json={"userId": otp["userId"], "pin": "1234", "otpToken": otp["otpToken"]})
    assert response.status_code == 200
    assert response.json()["user"]["name"] == "Rajesh Kumar"


def test_demo_nominee_is_linked(client):
    _run_seed()
    response = client.post("/api/auth/verify-otp", json={"phone": "+919876543211", "otp": "123456"})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['token']}"}
    stats = client.get("/api/dashboard/stats", headers=headers).json()
    assert stats["linkedOwners"] == 1
