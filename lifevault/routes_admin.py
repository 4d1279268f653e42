"""
lifevault/routes_admin.py

Administration: admin account creation (super admin only), user listing and
activation, audit log browsing.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from lifevault.audit import list_audit_logs, log_event
from lifevault.auth_context import AuthContext, hash_pin, require_auth_context
from lifevault.authz import Capability
from lifevault.db import DB_ERRORS, INTEGRITY_ERRORS, commit, execute, fetch_all, fetch_one, fetch_value, get_db, rollback
from lifevault.dependencies import require_capability
from lifevault.models import ADMIN_ROLES, AuditAction, AuditResource, UserRole
from lifevault.schemas_admin import AuditLogListResponse, CreateAdminRequest, UserListResponse, UserStatusRequest
from lifevault.schemas_auth import UserResponse
from lifevault.utils import new_id, now_iso

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
)


@router.post("/create", response_model=UserResponse, status_code=201,
             dependencies=[Depends(require_capability(Capability.ADMINS_CREATE))])
def create_admin(
    req: CreateAdminRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> UserResponse:
    now = now_iso()
    user = {
        "id": new_id(),
        "name": req.name,
        "phone": req.phone,
        "email": req.email,
        "address": None,
        "pin_hash": hash_pin(req.pin),
        "role": UserRole.admin.value,
        "is_active": 1,
        "created_at": now,
        "updated_at": now,
    }

    conn = get_db()
    try:
        execute(
            conn,
            """
            INSERT INTO users (id, name, phone, email, address, pin_hash, role, is_active, created_at, updated_at)
            VALUES (:id, :name, :phone, :email, :address, :pin_hash, :role, :is_active, :created_at, :updated_at)
            """,
            user,
        )
        log_event(conn, AuditAction.create, AuditResource.user, user_id=ctx.user_id, resource_id=user["id"],
                  description=f"Created admin {req.name}", request=request)
        commit(conn)
        print(f"[ADMIN] Admin created: user_id={user['id']} by {ctx.user_id}")
        return UserResponse.from_row(user)
    except INTEGRITY_ERRORS as e:
        rollback(conn)
        print(f"[ADMIN] IntegrityError creating admin: {e}")
        raise HTTPException(status_code=409, detail="Phone number or email already registered")
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[ADMIN] Database error creating admin: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/users", response_model=UserListResponse,
            dependencies=[Depends(require_capability(Capability.USERS_READ))])
def list_users(
    role: Optional[UserRole] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> UserListResponse:
    where = ""
    params = {}
    if role:
        where = "WHERE role = :role"
        params["role"] = role.value

    conn = get_db()
    try:
        total = fetch_value(conn, f"SELECT COUNT(*) FROM users {where}", params)
        rows = fetch_all(
            conn,
            f"SELECT * FROM users {where} ORDER BY created_at DESC, id LIMIT :limit OFFSET :offset",
            {**params, "limit": limit, "offset": offset},
        )
        return UserListResponse(items=[UserResponse.from_row(r) for r in rows], total=int(total))
    except DB_ERRORS as e:
        print(f"[ADMIN] Database error listing users: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/users/{user_id}/status", response_model=UserResponse,
            dependencies=[Depends(require_capability(Capability.USERS_MANAGE))])
def set_user_status(
    req: UserStatusRequest,
    request: Request,
    user_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> UserResponse:
    """Activate or deactivate a user. Deactivation revokes all of their sessions."""
    if user_id == ctx.user_id and not req.is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    conn = get_db()
    try:
        target = fetch_one(conn, "SELECT * FROM users WHERE id = :id", {"id": user_id})
        if not target:
            raise HTTPException(status_code=404, detail="User not found")
        if target["role"] in ADMIN_ROLES and ctx.role != UserRole.super_admin.value:
            raise HTTPException(status_code=403, detail="Only a super admin can change admin accounts")

        now = now_iso()
        execute(conn, "UPDATE users SET is_active = :active, updated_at = :now WHERE id = :id",
                {"active": int(req.is_active), "now": now, "id": user_id})
        if not req.is_active:
            revoked = execute(
                conn,
                "UPDATE auth_sessions SET revoked_at = :now WHERE user_id = :id AND revoked_at IS NULL",
                {"now": now, "id": user_id},
            )
            print(f"[ADMIN] Revoked {revoked} session(s) for user_id={user_id}")
        log_event(conn, AuditAction.update, AuditResource.user, user_id=ctx.user_id, resource_id=user_id,
                  description="User activated" if req.is_active else "User deactivated",
                  metadata={"isActive": req.is_active}, request=request)
        commit(conn)
        return UserResponse.from_row({**target, "is_active": int(req.is_active), "updated_at": now})
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[ADMIN] Database error updating user status: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/audit-logs", response_model=AuditLogListResponse,
            dependencies=[Depends(require_capability(Capability.AUDIT_READ))])
def audit_logs(
    user_id: Optional[str] = Query(None, alias="userId"),
    resource: Optional[AuditResource] = Query(None),
    action: Optional[AuditAction] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> AuditLogListResponse:
    conn = get_db()
    try:
        logs, total = list_audit_logs(
            conn,
            user_id=user_id,
            resource=resource.value if resource else None,
            action=action.value if action else None,
            limit=limit,
            offset=offset,
        )
        return AuditLogListResponse(logs=logs, total=total)
    except DB_ERRORS as e:
        print(f"[ADMIN] Database error reading audit logs: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
