"""
lifevault/test_auth.py

Registration, OTP + PIN login, session refresh/logout and profile tests.

Run:
    pytest lifevault/test_auth.py -v
"""

from unittest.mock import patch

from lifevault.config import OTP_MAX_ATTEMPTS
from lifevault.db import commit, execute, fetch_all, get_db_connection
from lifevault.utils import iso_in


def _register(client, **overrides):
    body = {
        "name": "Asha Rao",
        "phone": "98123 45678",
        "email": "Asha@Example.com",
        "pin": "4321",
        "role": "owner",
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def _login_owner(client, phone="+919812345678", pin="4321", code="654321"):
    with patch("lifevault.routes_auth.generate_otp", return_value=code):
        sent = client.post("/api/auth/send-otp", json={"phone": phone})
    assert sent.status_code == 200
    otp = client.post("/api/auth/verify-otp", json={"phone": phone, "otp": code})
    assert otp.status_code == 200
    challenge = otp.json()
    return client.post(
        "/api/auth/verify-pin",
        json={"userId": challenge["userId"], "pin": pin, "otpToken": challenge["otpToken"]},
    )


class TestRegister:
    def test_owner_registration_returns_session(self, client):
        response = _register(client)
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["token"]
        assert data["refreshToken"]
        assert data["sessionId"]
        assert data["user"]["phone"] == "+919812345678"
        assert data["user"]["email"] == "asha@example.com"
        assert data["user"]["role"] == "owner"
        assert "pinHash" not in data["user"]

    def test_owner_requires_pin(self, client):
        response = _register(client, pin=None)
        assert response.status_code == 400

    def test_malformed_pin_rejected(self, client):
        response = _register(client, pin="12a4")
        assert response.status_code == 422

    def test_duplicate_phone_conflicts(self, client):
        assert _register(client).status_code == 201
        response = _register(client, email="other@example.com")
        assert response.status_code == 409
        assert "Phone number" in response.json()["detail"]

    def test_duplicate_email_conflicts(self, client):
        assert _register(client).status_code == 201
        response = _register(client, phone="9000011111")
        assert response.status_code == 409
        assert "Email" in response.json()["detail"]

    def test_nominee_needs_matching_nominee_record(self, client):
        response = _register(client, role="nominee", pin=None)
        assert response.status_code == 403

    def test_nominee_with_matching_record_registers(self, client, owner):
        created = client.post(
            "/api/nominees",
            json={
                "name": "Asha Rao",
                "relation": "Spouse",
                "phone": "+919812345678",
                "email": "asha@example.com",
                "allocationPercentage": 50,
            },
            headers=owner["headers"],
        )
        assert created.status_code == 201

        response = _register(client, role="nominee", pin=None)
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "nominee"


class TestOtpPinLogin:
    def test_full_owner_login(self, client):
        _register(client)
        response = _login_owner(client)
        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"]["lastLoginAt"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["name"] == "Asha Rao"

    def test_send_otp_unknown_phone(self, client):
        response = client.post("/api/auth/send-otp", json={"phone": "+919000000000"})
        assert response.status_code == 404

    def test_send_otp_inactive_user(self, client, make_user):
        user = make_user("owner", phone="+919000000123", is_active=False)
        response = client.post("/api/auth/send-otp", json={"phone": user["phone"]})
        assert response.status_code == 403

    def test_otp_is_stored_hashed(self, client):
        _register(client)
        with patch("lifevault.routes_auth.generate_otp", return_value="654321"):
            client.post("/api/auth/send-otp", json={"phone": "+919812345678"})
        with get_db_connection() as conn:
            rows = fetch_all(conn, "SELECT code_hash FROM otp_codes")
        assert rows
        assert all(r["code_hash"] != "654321" for r in rows)

    def test_wrong_pin_rejected(self, client):
        _register(client)
        response = _login_owner(client, pin="0000")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid PIN"

    def test_invalid_otp_counts_attempts(self, client):
        _register(client)
        with patch("lifevault.routes_auth.generate_otp", return_value="654321"):
            client.post("/api/auth/send-otp", json={"phone": "+919812345678"})

        for _ in range(OTP_MAX_ATTEMPTS):
            bad = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "000000"})
            assert bad.status_code == 400
            assert bad.json()["detail"] == "Invalid OTP"

        locked = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "654321"})
        assert locked.status_code == 400
        assert "Too many attempts" in locked.json()["detail"]

    def test_expired_otp_rejected(self, client):
        _register(client)
        with patch("lifevault.routes_auth.generate_otp", return_value="654321"):
            client.post("/api/auth/send-otp", json={"phone": "+919812345678"})
        with get_db_connection() as conn:
            execute(conn, "UPDATE otp_codes SET expires_at = :past", {"past": iso_in(minutes=-1)})
            commit(conn)

        response = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "654321"})
        assert response.status_code == 400
        assert "OTP expired" in response.json()["detail"]

    def test_otp_without_request(self, client):
        _register(client)
        response = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "000000"})
        assert response.status_code == 400
        assert "No active OTP" in response.json()["detail"]

    def test_demo_otp_accepted_in_dev(self, client):
        _register(client)
        response = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "123456"})
        assert response.status_code == 200
        assert response.json()["requiresPin"] is True

    def test_nominee_login_skips_pin(self, client, make_user):
        nominee = make_user("nominee", phone="+919000000222", pin=None)
        with patch("lifevault.routes_auth.generate_otp", return_value="222222"):
            sent = client.post("/api/auth/send-otp", json={"phone": nominee["phone"]})
        assert sent.json()["requiresPin"] is False

        response = client.post("/api/auth/verify-otp", json={"phone": nominee["phone"], "otp": "222222"})
        assert response.status_code == 200
        assert response.json()["token"]
        assert response.json()["user"]["role"] == "nominee"

    def test_challenge_token_bound_to_user(self, client, make_user):
        _register(client)
        other = make_user("owner")
        otp = client.post("/api/auth/verify-otp", json={"phone": "+919812345678", "otp": "123456"}).json()
        response = client.post(
            "/api/auth/verify-pin",
            json={"userId": other["id"], "pin": "1234", "otpToken": otp["otpToken"]},
        )
        assert response.status_code == 401

    def test_access_token_not_accepted_as_challenge(self, client, owner):
        response = client.post(
            "/api/auth/verify-pin",
            json={"userId": owner["id"], "pin": "1234", "otpToken": owner["token"]},
        )
        assert response.status_code == 401


class TestSessions:
    def test_refresh_rotates_token(self, client):
        session = _register(client).json()
        body = {"sessionId": session["sessionId"], "refreshToken": session["refreshToken"]}

        first = client.post("/api/auth/refresh", json=body)
        assert first.status_code == 200
        assert first.json()["refreshToken"] != session["refreshToken"]

        reused = client.post("/api/auth/refresh", json=body)
        assert reused.status_code == 401

    def test_refresh_after_session_expiry(self, client):
        session = _register(client).json()
        with get_db_connection() as conn:
            execute(conn, "UPDATE auth_sessions SET expires_at = :past WHERE id = :id",
                    {"past": iso_in(minutes=-1), "id": session["sessionId"]})
            commit(conn)

        response = client.post(
            "/api/auth/refresh",
            json={"sessionId": session["sessionId"], "refreshToken": session["refreshToken"]},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Session expired"

    def test_logout_revokes_session(self, client):
        session = _register(client).json()
        headers = {"Authorization": f"Bearer {session['token']}"}
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        out = client.post("/api/auth/logout", json={"sessionId": session["sessionId"]})
        assert out.status_code == 200
        assert out.json()["success"] is True

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 401
        assert me.json()["detail"] == "Session revoked"

        again = client.post("/api/auth/logout", json={"sessionId": session["sessionId"]})
        assert again.status_code == 200

        refreshed = client.post(
            "/api/auth/refresh",
            json={"sessionId": session["sessionId"], "refreshToken": session["refreshToken"]},
        )
        assert refreshed.status_code == 401

    def test_missing_token_rejected(self, client):
        assert client.get("/api/auth/me").status_code in (401, 403)

    def test_garbage_token_rejected(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestProfile:
    def test_update_profile(self, client, owner):
        response = client.put("/api/auth/me", json={"name": "Owner Renamed", "address": "  "},
                              headers=owner["headers"])
        assert response.status_code == 200
        assert response.json()["name"] == "Owner Renamed"
        assert response.json()["address"] is None

    def test_update_email_clash(self, client, owner, other_owner):
        response = client.put("/api/auth/me", json={"email": other_owner["email"]}, headers=owner["headers"])
        assert response.status_code == 409

    def test_empty_update_rejected(self, client, owner):
        response = client.put("/api/auth/me", json={}, headers=owner["headers"])
        assert response.status_code == 400
