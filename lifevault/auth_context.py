"""
lifevault/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- hash_pin / verify_pin: bcrypt PIN hashing
- create_access_token / create_pin_challenge_token: JWT issuing
- verify_token: JWT verification
- AuthContext: identity derived from the token plus the users table
- require_auth_context: FastAPI dependency for auth enforcement

This module MUST NOT import lifevault.main to avoid circular dependencies.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Set

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from lifevault.authz import effective_capabilities
from lifevault.config import (
    SECRET_KEY,
    ALGORITHM,
    ACCESS_TOKEN_MINUTES,
    PIN_CHALLENGE_MINUTES,
    BCRYPT_ROUNDS,
    IS_DEV,
)
from lifevault.db import DB_ERRORS, get_db, fetch_one

# Security scheme for HTTPBearer
security = HTTPBearer()

ACCESS_TOKEN_TYPE = "access"
PIN_CHALLENGE_TYPE = "pin_challenge"


# ---------------------------------------------------------
# PIN hashing
# ---------------------------------------------------------
def hash_pin(pin: str) -> str:
    return bcrypt.hashpw(pin.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_pin(pin: str, pin_hash: Optional[str]) -> bool:
    if not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode(), pin_hash.encode())
    except ValueError:
        # Malformed hash in the database
        return False


# ---------------------------------------------------------
# JWT issuing / verification
# ---------------------------------------------------------
def _encode(claims: dict, minutes: int) -> str:
    now = datetime.utcnow()
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + timedelta(minutes=minutes)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user_id: str, role: str, session_id: Optional[str] = None) -> str:
    return _encode(
        {"sub": user_id, "role": role, "session_id": session_id, "type": ACCESS_TOKEN_TYPE},
        ACCESS_TOKEN_MINUTES,
    )


def create_pin_challenge_token(user_id: str) -> str:
    """Short-lived proof that the OTP step succeeded; exchanged at /verify-pin."""
    return _encode({"sub": user_id, "type": PIN_CHALLENGE_TYPE}, PIN_CHALLENGE_MINUTES)


def verify_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> dict:
    """
    Verify a JWT and return its decoded payload.

    Raises:
        HTTPException(401): If token is expired, invalid or of the wrong type
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if payload.get("type") != expected_type:
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity of the caller, derived from the access token and the users table.
    This is the ONLY source of truth for user_id and role in protected endpoints.
    Never trust user ids from request bodies for ownership.
    """
    user_id: str
    role: str
    name: str
    email: str
    phone: str
    capabilities: Set[str]
    session_id: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthContext:
    """
    Auth dependency for every protected route.

    1. Verify JWT signature, expiry and token type
    2. Reject revoked sessions
    3. Load the user (backend is the source of truth for role and status)

    Raises:
        HTTPException(401): invalid/expired token, revoked session, unknown user
        HTTPException(403): inactive user
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    session_id = payload.get("session_id")

    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    conn = get_db()
    try:
        user_row = fetch_one(
            conn,
            "SELECT id, name, email, phone, role, is_active FROM users WHERE id = :id",
            {"id": user_id},
        )
        session_row = None
        if session_id:
            session_row = fetch_one(
                conn,
                "SELECT revoked_at FROM auth_sessions WHERE id = :id AND user_id = :user_id",
                {"id": session_id, "user_id": user_id},
            )
    except DB_ERRORS as e:
        print(f"[AUTH] Database error loading user: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    if not user_row:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user_row["is_active"]:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise HTTPException(status_code=403, detail="Account inactive")

    if session_id and (session_row is None or session_row["revoked_at"]):
        print(f"[AUTH] Revoked session used: user_id={user_id}")
        raise HTTPException(status_code=401, detail="Session revoked")

    role = user_row["role"] or "owner"
    ctx = AuthContext(
        user_id=user_row["id"],
        role=role,
        name=user_row["name"],
        email=user_row["email"],
        phone=user_row["phone"],
        capabilities=effective_capabilities(role),
        session_id=session_id,
    )

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role}, "
              f"capabilities={len(ctx.capabilities)}")

    return ctx
