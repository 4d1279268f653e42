"""
lifevault/routes_auth.py

Registration and the two-step login flow.

Login:
  1. POST /send-otp      phone -> one-time code (logged in dev, SMS out of scope)
  2. POST /verify-otp    phone + code
       nominee -> tokens issued immediately
       others  -> short-lived otpToken for step 3
  3. POST /verify-pin    userId + pin + otpToken -> tokens

Sessions use the access/refresh pattern: a short-lived JWT plus a
rotating refresh token stored hashed in auth_sessions.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from lifevault.audit import log_event
from lifevault.auth_context import (
    AuthContext,
    PIN_CHALLENGE_TYPE,
    create_access_token,
    create_pin_challenge_token,
    hash_pin,
    require_auth_context,
    verify_pin as check_pin,
    verify_token,
)
from lifevault.config import DEMO_OTP, IS_DEV, OTP_MAX_ATTEMPTS, OTP_MINUTES, REFRESH_TOKEN_DAYS
from lifevault.db import DB_ERRORS, INTEGRITY_ERRORS, commit, execute, fetch_one, get_db, rollback
from lifevault.models import AuditAction, AuditResource, UserRole
from lifevault.schemas_auth import (
    AuthResponse,
    LogoutRequest,
    OtpChallengeResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    SendOtpRequest,
    UserResponse,
    VerifyOtpRequest,
    VerifyPinRequest,
)
from lifevault.utils import (
    generate_otp,
    generate_refresh_token,
    hash_token,
    iso_in,
    is_past,
    new_id,
    now_iso,
    verify_token_hash,
)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def _issue_session(conn, user: dict, message: str) -> AuthResponse:
    """Create an auth session and access token for user. Caller commits."""
    session_id = new_id()
    refresh_token = generate_refresh_token()
    now = datetime.utcnow()

    execute(
        conn,
        """
        INSERT INTO auth_sessions (id, user_id, refresh_token_hash, created_at, expires_at)
        VALUES (:id, :user_id, :hash, :created_at, :expires_at)
        """,
        {
            "id": session_id,
            "user_id": user["id"],
            "hash": hash_token(refresh_token),
            "created_at": now.isoformat() + "Z",
            "expires_at": (now + timedelta(days=REFRESH_TOKEN_DAYS)).isoformat() + "Z",
        },
    )
    execute(
        conn,
        "UPDATE users SET last_login_at = :now WHERE id = :id",
        {"now": now.isoformat() + "Z", "id": user["id"]},
    )

    token = create_access_token(user["id"], user["role"], session_id)
    user = dict(user, last_login_at=now.isoformat() + "Z")

    if IS_DEV:
        print(f"[AUTH] Session created: user_id={user['id']}, role={user['role']}, session_id={session_id}")

    return AuthResponse(
        message=message,
        user=UserResponse.from_row(user),
        token=token,
        refresh_token=refresh_token,
        session_id=session_id,
    )


def _find_user_by_phone(conn, phone: str, role: Optional[str]) -> dict:
    query = "SELECT * FROM users WHERE phone = :phone"
    params = {"phone": phone}
    if role:
        query += " AND role = :role"
        params["role"] = role
    user = fetch_one(conn, query, params)
    if not user:
        raise HTTPException(status_code=404, detail="User not found. Please register first.")
    if not user["is_active"]:
        print(f"[AUTH] Login attempt on inactive account: user_id={user['id']}")
        raise HTTPException(status_code=403, detail="Account inactive")
    return user


# ---------------------------------------------------------
# Registration
# ---------------------------------------------------------
@router.post("/register", response_model=AuthResponse, status_code=201)
def register(req: RegisterRequest, request: Request) -> AuthResponse:
    """
    Register an owner or a nominee.

    A nominee can only register when some owner has already listed them
    (matching phone or email) as a nominee.
    """
    if req.role == UserRole.owner.value and not req.pin:
        raise HTTPException(status_code=400, detail="PIN is required")

    conn = get_db()
    try:
        existing = fetch_one(
            conn,
            "SELECT phone, email FROM users WHERE phone = :phone OR email = :email",
            {"phone": req.phone, "email": req.email},
        )
        if existing:
            field = "Phone number" if existing["phone"] == req.phone else "Email"
            print(f"[REGISTER] Duplicate {field.lower()} rejected")
            raise HTTPException(status_code=409, detail=f"{field} already registered")

        if req.role == UserRole.nominee.value:
            link = fetch_one(
                conn,
                "SELECT id FROM nominees WHERE phone = :phone OR LOWER(email) = :email LIMIT 1",
                {"phone": req.phone, "email": req.email},
            )
            if not link:
                print("[REGISTER] Nominee registration without matching nominee record")
                raise HTTPException(
                    status_code=403,
                    detail="No owner has listed this phone or email as a nominee",
                )

        now = now_iso()
        user = {
            "id": new_id(),
            "name": req.name,
            "phone": req.phone,
            "email": req.email,
            "address": req.address,
            "pin_hash": hash_pin(req.pin) if req.pin else None,
            "role": req.role,
            "is_active": 1,
            "created_at": now,
            "updated_at": now,
        }
        execute(
            conn,
            """
            INSERT INTO users (id, name, phone, email, address, pin_hash, role, is_active, created_at, updated_at)
            VALUES (:id, :name, :phone, :email, :address, :pin_hash, :role, :is_active, :created_at, :updated_at)
            """,
            user,
        )
        log_event(conn, AuditAction.create, AuditResource.user, user_id=user["id"], resource_id=user["id"],
                  description=f"Registered as {req.role}", request=request)
        response = _issue_session(conn, user, "Registration successful")
        commit(conn)

        print(f"[REGISTER] User created: user_id={user['id']}, role={req.role}")
        return response
    except HTTPException:
        raise
    except INTEGRITY_ERRORS as e:
        rollback(conn)
        print(f"[REGISTER] IntegrityError: {e}")
        raise HTTPException(status_code=409, detail="Phone number or email already registered")
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[REGISTER] Database error: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


# ---------------------------------------------------------
# OTP + PIN login
# ---------------------------------------------------------
@router.post("/send-otp")
def send_otp(req: SendOtpRequest, request: Request):
    conn = get_db()
    try:
        user = _find_user_by_phone(conn, req.phone, req.role)
        code = generate_otp()
        now = now_iso()

        # Only the newest code is usable
        execute(
            conn,
            "UPDATE otp_codes SET consumed_at = :now WHERE user_id = :user_id AND consumed_at IS NULL",
            {"now": now, "user_id": user["id"]},
        )
        execute(
            conn,
            """
            INSERT INTO otp_codes (id, user_id, code_hash, attempts, created_at, expires_at)
            VALUES (:id, :user_id, :code_hash, 0, :created_at, :expires_at)
            """,
            {
                "id": new_id(),
                "user_id": user["id"],
                "code_hash": hash_token(code),
                "created_at": now,
                "expires_at": iso_in(minutes=OTP_MINUTES),
            },
        )
        log_event(conn, AuditAction.otp_send, AuditResource.auth, user_id=user["id"],
                  description="OTP issued", request=request)
        commit(conn)

        if IS_DEV:
            print(f"[OTP][DEV] phone={req.phone} code={code}")

        return {
            "success": True,
            "message": "OTP sent successfully",
            "userId": user["id"],
            "requiresPin": user["role"] != UserRole.nominee.value,
            "expiresInMinutes": OTP_MINUTES,
        }
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error in send-otp: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("/verify-otp")
def verify_otp(req: VerifyOtpRequest, request: Request):
    conn = get_db()
    try:
        user = _find_user_by_phone(conn, req.phone, req.role)
        otp_row = fetch_one(
            conn,
            """
            SELECT * FROM otp_codes
            WHERE user_id = :user_id AND consumed_at IS NULL
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"user_id": user["id"]},
        )

        demo_match = bool(DEMO_OTP) and req.otp == DEMO_OTP
        if not demo_match:
            if not otp_row:
                raise HTTPException(status_code=400, detail="No active OTP. Please request a new one")
            if is_past(otp_row["expires_at"]):
                raise HTTPException(status_code=400, detail="OTP expired. Please request a new one")
            if otp_row["attempts"] >= OTP_MAX_ATTEMPTS:
                raise HTTPException(status_code=400, detail="Too many attempts. Please request a new OTP")
            if not verify_token_hash(req.otp, otp_row["code_hash"]):
                execute(
                    conn,
                    "UPDATE otp_codes SET attempts = attempts + 1 WHERE id = :id",
                    {"id": otp_row["id"]},
                )
                commit(conn)
                print(f"[AUTH] Invalid OTP for user_id={user['id']}")
                raise HTTPException(status_code=400, detail="Invalid OTP")

        if otp_row:
            execute(conn, "UPDATE otp_codes SET consumed_at = :now WHERE id = :id",
                    {"now": now_iso(), "id": otp_row["id"]})
        log_event(conn, AuditAction.otp_verify, AuditResource.auth, user_id=user["id"],
                  description="OTP verified", request=request)

        if user["role"] == UserRole.nominee.value:
            response = _issue_session(conn, user, "Login successful")
            log_event(conn, AuditAction.login, AuditResource.auth, user_id=user["id"],
                      description="Nominee login", request=request)
            commit(conn)
            return response

        commit(conn)
        return OtpChallengeResponse(
            message="OTP verified. Please enter your PIN",
            user_id=user["id"],
            otp_token=create_pin_challenge_token(user["id"]),
        )
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error in verify-otp: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("/verify-pin", response_model=AuthResponse)
def verify_pin(req: VerifyPinRequest, request: Request) -> AuthResponse:
    payload = verify_token(req.otp_token, expected_type=PIN_CHALLENGE_TYPE)
    if payload.get("sub") != req.user_id:
        print("[AUTH] PIN challenge token does not match user")
        raise HTTPException(status_code=401, detail="Invalid token")

    conn = get_db()
    try:
        user = fetch_one(conn, "SELECT * FROM users WHERE id = :id", {"id": req.user_id})
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if not user["is_active"]:
            raise HTTPException(status_code=403, detail="Account inactive")

        if not check_pin(req.pin, user["pin_hash"]):
            log_event(conn, AuditAction.pin_verify, AuditResource.auth, user_id=user["id"],
                      description="Invalid PIN", metadata={"success": False}, request=request)
            commit(conn)
            print(f"[AUTH] Invalid PIN for user_id={user['id']}")
            raise HTTPException(status_code=400, detail="Invalid PIN")

        log_event(conn, AuditAction.pin_verify, AuditResource.auth, user_id=user["id"],
                  description="PIN verified", metadata={"success": True}, request=request)
        response = _issue_session(conn, user, "Login successful")
        log_event(conn, AuditAction.login, AuditResource.auth, user_id=user["id"],
                  description="Login", request=request)
        commit(conn)
        return response
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error in verify-pin: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


# ---------------------------------------------------------
# Sessions
# ---------------------------------------------------------
@router.post("/refresh")
def refresh_token(req: RefreshRequest):
    """Refresh access token using refresh token with rotation."""
    conn = get_db()
    try:
        session = fetch_one(conn, "SELECT * FROM auth_sessions WHERE id = :id", {"id": req.session_id})
        if not session:
            raise HTTPException(status_code=401, detail="Invalid session")
        if session["revoked_at"]:
            raise HTTPException(status_code=401, detail="Session revoked")
        if is_past(session["expires_at"]):
            raise HTTPException(status_code=401, detail="Session expired")
        if not verify_token_hash(req.refresh_token, session["refresh_token_hash"]):
            raise HTTPException(status_code=401, detail="Invalid refresh token")

        user = fetch_one(conn, "SELECT * FROM users WHERE id = :id", {"id": session["user_id"]})
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        if not user["is_active"]:
            raise HTTPException(status_code=403, detail="Account inactive")

        new_refresh_token = generate_refresh_token()
        execute(
            conn,
            "UPDATE auth_sessions SET refresh_token_hash = :hash, last_used_at = :now WHERE id = :id",
            {"hash": hash_token(new_refresh_token), "now": now_iso(), "id": req.session_id},
        )
        commit(conn)

        return {
            "success": True,
            "token": create_access_token(user["id"], user["role"], req.session_id),
            "refreshToken": new_refresh_token,
            "sessionId": req.session_id,
            "user": UserResponse.from_row(user).model_dump(by_alias=True),
        }
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error in refresh: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("/logout")
def logout(req: LogoutRequest, request: Request):
    """Revoke a session (idempotent)."""
    conn = get_db()
    try:
        session = fetch_one(conn, "SELECT * FROM auth_sessions WHERE id = :id", {"id": req.session_id})
        if session:
            if req.refresh_token and not verify_token_hash(req.refresh_token, session["refresh_token_hash"]):
                raise HTTPException(status_code=401, detail="Invalid refresh token")

            if not session["revoked_at"]:
                execute(conn, "UPDATE auth_sessions SET revoked_at = :now WHERE id = :id",
                        {"now": now_iso(), "id": req.session_id})
                log_event(conn, AuditAction.logout, AuditResource.auth, user_id=session["user_id"],
                          description="Logout", request=request)
                commit(conn)
        return {"success": True, "message": "Logged out"}
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error in logout: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


# ---------------------------------------------------------
# Profile
# ---------------------------------------------------------
@router.get("/me", response_model=UserResponse)
def get_me(ctx: AuthContext = Depends(require_auth_context)) -> UserResponse:
    conn = get_db()
    try:
        user = fetch_one(conn, "SELECT * FROM users WHERE id = :id", {"id": ctx.user_id})
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return UserResponse.from_row(user)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        print(f"[AUTH] Database error in me: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/me", response_model=UserResponse)
def update_me(
    req: ProfileUpdateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> UserResponse:
    updates = req.model_dump(exclude_unset=True)
    pin = updates.pop("pin", None)
    if pin:
        updates["pin_hash"] = hash_pin(pin)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    conn = get_db()
    try:
        if "email" in updates:
            clash = fetch_one(conn, "SELECT id FROM users WHERE email = :email AND id != :id",
                              {"email": updates["email"], "id": ctx.user_id})
            if clash:
                raise HTTPException(status_code=409, detail="Email already registered")

        updates["updated_at"] = now_iso()
        assignments = ", ".join(f"{col} = :{col}" for col in updates)
        execute(conn, f"UPDATE users SET {assignments} WHERE id = :id", {**updates, "id": ctx.user_id})
        changed = sorted(k for k in updates if k != "updated_at")
        log_event(conn, AuditAction.update, AuditResource.user, user_id=ctx.user_id, resource_id=ctx.user_id,
                  description="Profile updated", metadata={"fields": changed}, request=request)
        commit(conn)

        user = fetch_one(conn, "SELECT * FROM users WHERE id = :id", {"id": ctx.user_id})
        return UserResponse.from_row(user)
    except HTTPException:
        raise
    except INTEGRITY_ERRORS:
        rollback(conn)
        raise HTTPException(status_code=409, detail="Email already registered")
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[AUTH] Database error updating profile: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
