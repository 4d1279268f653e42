"""
lifevault/routes_vault.py

Vault request (claim) workflow.

A nominee user files a request against a nominee record that matches their
phone or email. Admins review it:

    pending -> under_review -> verified | rejected
    pending -> verified | rejected

verified and rejected are terminal. Once verified, the claimant may read
the owner's assets and trading accounts through /{id}/contents.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response

from lifevault.audit import log_event
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.config import IS_DEV
from lifevault.db import DB_ERRORS, INTEGRITY_ERRORS, commit, execute, fetch_all, fetch_one, fetch_value, get_db, rollback
from lifevault.dependencies import require_capability
from lifevault.models import (
    ACTIVE_VAULT_STATUSES,
    VAULT_TRANSITIONS,
    AuditAction,
    AuditResource,
    UserRole,
    VaultRequestStatus,
)
from lifevault.routes_assets import list_assets_for_user
from lifevault.routes_nominees import owner_net_worth
from lifevault.routes_trading_accounts import list_trading_accounts_for_user
from lifevault.schemas_assets import AssetResponse
from lifevault.schemas_trading import TradingAccountResponse
from lifevault.schemas_vault import (
    VaultContentsResponse,
    VaultOwnerRef,
    VaultRequestCreate,
    VaultRequestListResponse,
    VaultRequestResponse,
    VaultReviewNotes,
    VaultStatusUpdate,
)
from lifevault.utils import new_id, now_iso, safe_float

router = APIRouter(
    prefix="/api/vault/requests",
    tags=["vault"],
)

NOT_FOUND = "Vault request not found"

_SELECT_JOINED = """
    SELECT v.*, n.name AS n_name, n.relation AS n_relation, u.name AS owner_name
    FROM vault_requests v
    LEFT JOIN nominees n ON n.id = v.nominee_id
    LEFT JOIN users u ON u.id = v.owner_id
"""


def _scope(ctx: AuthContext) -> tuple:
    """Role-based visibility: owners see claims on them, nominees their own, admins all."""
    if ctx.is_admin:
        return "", {}
    if ctx.role == UserRole.nominee.value:
        return "v.submitted_by = :scope_user", {"scope_user": ctx.user_id}
    return "v.owner_id = :scope_user", {"scope_user": ctx.user_id}


def _fetch_visible(conn, request_id: str, ctx: AuthContext) -> Dict[str, Any]:
    clause, params = _scope(ctx)
    where = "v.id = :id" + (f" AND {clause}" if clause else "")
    row = fetch_one(conn, _SELECT_JOINED + f" WHERE {where}", {**params, "id": request_id})
    if not row:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return row


def count_by_status(conn, where: str = "", params: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    """Per-status counts of vault requests (used by the dashboard too)."""
    sql = "SELECT v.status AS status, COUNT(*) AS n FROM vault_requests v"
    if where:
        sql += f" WHERE {where}"
    sql += " GROUP BY v.status"
    counts = {s.value: 0 for s in VaultRequestStatus}
    for row in fetch_all(conn, sql, params or {}):
        counts[row["status"]] = int(row["n"])
    return counts


# ---------------------------------------------------------
# Submit / list / read
# ---------------------------------------------------------
@router.post("", response_model=VaultRequestResponse, status_code=201,
             dependencies=[Depends(require_capability(Capability.VAULT_SUBMIT))])
def create_vault_request(
    req: VaultRequestCreate,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestResponse:
    conn = get_db()
    try:
        nominee = fetch_one(
            conn,
            "SELECT * FROM nominees WHERE id = :id AND (phone = :phone OR LOWER(email) = :email)",
            {"id": req.nominee_id, "phone": ctx.phone, "email": ctx.email.lower()},
        )
        if not nominee:
            print(f"[VAULT] Nominee record not linked to caller: user_id={ctx.user_id}")
            raise HTTPException(status_code=404, detail="Nominee record not found")

        active = fetch_value(
            conn,
            "SELECT COUNT(*) FROM vault_requests WHERE nominee_id = :id AND status IN (:s1, :s2)",
            {"id": req.nominee_id, "s1": ACTIVE_VAULT_STATUSES[0], "s2": ACTIVE_VAULT_STATUSES[1]},
        )
        if active:
            raise HTTPException(status_code=409, detail="An active vault request already exists for this nominee")

        if req.document_validation_id:
            doc = fetch_one(
                conn,
                "SELECT id FROM document_validations WHERE id = :id AND user_id = :user_id",
                {"id": req.document_validation_id, "user_id": ctx.user_id},
            )
            if not doc:
                raise HTTPException(status_code=400, detail="Invalid document validation")

        now = now_iso()
        row = {
            "id": new_id(),
            "nominee_id": nominee["id"],
            "owner_id": nominee["user_id"],
            "submitted_by": ctx.user_id,
            "nominee_name": req.nominee_name or nominee["name"],
            "relation_to_deceased": req.relation_to_deceased,
            "phone_number": req.phone_number,
            "email": req.email,
            "death_certificate_url": req.death_certificate_url,
            "document_validation_id": req.document_validation_id,
            "status": VaultRequestStatus.pending.value,
            "created_at": now,
            "updated_at": now,
        }
        execute(
            conn,
            """
            INSERT INTO vault_requests (id, nominee_id, owner_id, submitted_by, nominee_name,
                                        relation_to_deceased, phone_number, email, death_certificate_url,
                                        document_validation_id, status, created_at, updated_at)
            VALUES (:id, :nominee_id, :owner_id, :submitted_by, :nominee_name,
                    :relation_to_deceased, :phone_number, :email, :death_certificate_url,
                    :document_validation_id, :status, :created_at, :updated_at)
            """,
            row,
        )
        log_event(conn, AuditAction.vault_request, AuditResource.vault_request, user_id=ctx.user_id,
                  resource_id=row["id"], description=f"Vault request filed by {row['nominee_name']}",
                  metadata={"ownerId": row["owner_id"]}, request=request)
        commit(conn)

        print(f"[VAULT] Request created: id={row['id']}, owner_id={row['owner_id']}, submitted_by={ctx.user_id}")
        return VaultRequestResponse.from_row(_fetch_visible(conn, row["id"], ctx))
    except HTTPException:
        raise
    except INTEGRITY_ERRORS as e:
        # uq_vault_requests_active: another request for this nominee landed first
        rollback(conn)
        print(f"[VAULT] IntegrityError creating request: {e}")
        raise HTTPException(status_code=409, detail="An active vault request already exists for this nominee")
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[VAULT] Database error creating request: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("", response_model=VaultRequestListResponse,
            dependencies=[Depends(require_capability(Capability.VAULT_READ))])
def list_vault_requests(
    status: Optional[VaultRequestStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestListResponse:
    clause, params = _scope(ctx)
    clauses = [clause] if clause else []
    if status:
        clauses.append("v.status = :status")
        params["status"] = status.value
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

    conn = get_db()
    try:
        total = fetch_value(conn, f"SELECT COUNT(*) FROM vault_requests v{where}", params)
        rows = fetch_all(
            conn,
            _SELECT_JOINED + where + " ORDER BY v.created_at DESC, v.id LIMIT :limit OFFSET :offset",
            {**params, "limit": limit, "offset": offset},
        )
        return VaultRequestListResponse(items=[VaultRequestResponse.from_row(r) for r in rows], total=int(total))
    except DB_ERRORS as e:
        print(f"[VAULT] Database error listing requests: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/{request_id}", response_model=VaultRequestResponse,
            dependencies=[Depends(require_capability(Capability.VAULT_READ))])
def get_vault_request(
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestResponse:
    conn = get_db()
    try:
        return VaultRequestResponse.from_row(_fetch_visible(conn, request_id, ctx))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        print(f"[VAULT] Database error fetching request: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


# ---------------------------------------------------------
# Admin review
# ---------------------------------------------------------
def _review(
    request_id: str,
    new_status: str,
    notes: Optional[str],
    ctx: AuthContext,
    request: Request,
) -> VaultRequestResponse:
    conn = get_db()
    try:
        row = fetch_one(conn, "SELECT * FROM vault_requests WHERE id = :id", {"id": request_id})
        if not row:
            raise HTTPException(status_code=404, detail=NOT_FOUND)

        current = row["status"]
        if new_status not in VAULT_TRANSITIONS.get(current, set()):
            raise HTTPException(status_code=409, detail=f"Cannot change status from {current} to {new_status}")
        if new_status == VaultRequestStatus.rejected.value and not notes:
            raise HTTPException(status_code=400, detail="Admin notes are required when rejecting a request")

        now = now_iso()
        updates = {
            "status": new_status,
            "admin_notes": notes if notes is not None else row["admin_notes"],
            "reviewed_at": now,
            "reviewed_by": ctx.user_id,
            "updated_at": now,
        }
        if new_status == VaultRequestStatus.verified.value:
            updates["vault_opened_at"] = now

        assignments = ", ".join(f"{c} = :{c}" for c in updates)
        # Status guard makes concurrent reviews of the same request lose cleanly
        changed = execute(
            conn,
            f"UPDATE vault_requests SET {assignments} WHERE id = :id AND status = :current",
            {**updates, "id": request_id, "current": current},
        )
        if not changed:
            rollback(conn)
            raise HTTPException(status_code=409, detail="Request was modified concurrently")

        action = {
            VaultRequestStatus.verified.value: AuditAction.vault_approve,
            VaultRequestStatus.rejected.value: AuditAction.vault_reject,
        }.get(new_status, AuditAction.update)
        log_event(conn, action, AuditResource.vault_request, user_id=ctx.user_id, resource_id=request_id,
                  description=f"Vault request {current} -> {new_status}",
                  metadata={"from": current, "to": new_status}, request=request)
        commit(conn)

        print(f"[VAULT] Reviewed: id={request_id}, {current} -> {new_status}, reviewer={ctx.user_id}")
        return VaultRequestResponse.from_row(_fetch_visible(conn, request_id, ctx))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[VAULT] Database error reviewing request: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/{request_id}", response_model=VaultRequestResponse,
            dependencies=[Depends(require_capability(Capability.VAULT_REVIEW))])
def update_vault_request_status(
    req: VaultStatusUpdate,
    request: Request,
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestResponse:
    return _review(request_id, req.status.value, req.admin_notes, ctx, request)


@router.post("/{request_id}/approve", response_model=VaultRequestResponse,
             dependencies=[Depends(require_capability(Capability.VAULT_REVIEW))])
def approve_vault_request(
    request: Request,
    req: Optional[VaultReviewNotes] = None,
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestResponse:
    notes = req.admin_notes if req else None
    return _review(request_id, VaultRequestStatus.verified.value, notes, ctx, request)


@router.post("/{request_id}/reject", response_model=VaultRequestResponse,
             dependencies=[Depends(require_capability(Capability.VAULT_REVIEW))])
def reject_vault_request(
    req: VaultReviewNotes,
    request: Request,
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultRequestResponse:
    return _review(request_id, VaultRequestStatus.rejected.value, req.admin_notes, ctx, request)


# ---------------------------------------------------------
# Claimant actions
# ---------------------------------------------------------
@router.delete("/{request_id}", status_code=204,
               dependencies=[Depends(require_capability(Capability.VAULT_SUBMIT))])
def withdraw_vault_request(
    request: Request,
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Response:
    conn = get_db()
    try:
        row = fetch_one(conn, "SELECT * FROM vault_requests WHERE id = :id AND submitted_by = :user_id",
                        {"id": request_id, "user_id": ctx.user_id})
        if not row:
            raise HTTPException(status_code=404, detail=NOT_FOUND)
        if row["status"] != VaultRequestStatus.pending.value:
            raise HTTPException(status_code=409, detail="Only pending requests can be withdrawn")

        execute(conn, "DELETE FROM vault_requests WHERE id = :id", {"id": request_id})
        log_event(conn, AuditAction.delete, AuditResource.vault_request, user_id=ctx.user_id,
                  resource_id=request_id, description="Vault request withdrawn", request=request)
        commit(conn)
        return Response(status_code=204)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[VAULT] Database error withdrawing request: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/{request_id}/contents", response_model=VaultContentsResponse,
            dependencies=[Depends(require_capability(Capability.VAULT_CONTENTS))])
def get_vault_contents(
    request: Request,
    request_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> VaultContentsResponse:
    """The owner's holdings, visible to the claimant once the request is verified."""
    conn = get_db()
    try:
        row = fetch_one(
            conn,
            _SELECT_JOINED + " WHERE v.id = :id AND v.submitted_by = :user_id",
            {"id": request_id, "user_id": ctx.user_id},
        )
        if not row:
            raise HTTPException(status_code=404, detail=NOT_FOUND)
        if row["status"] != VaultRequestStatus.verified.value:
            raise HTTPException(status_code=403, detail="Vault has not been opened for this request")

        owner_id = row["owner_id"]
        nominee = fetch_one(conn, "SELECT allocation_percentage FROM nominees WHERE id = :id",
                            {"id": row["nominee_id"]})
        allocation = safe_float(nominee["allocation_percentage"]) if nominee else 0.0
        assets, _ = list_assets_for_user(conn, owner_id)
        trading, _ = list_trading_accounts_for_user(conn, owner_id)
        net_worth = owner_net_worth(conn, owner_id)

        log_event(conn, AuditAction.read, AuditResource.vault_request, user_id=ctx.user_id,
                  resource_id=request_id, description="Vault contents viewed",
                  metadata={"ownerId": owner_id}, request=request)
        commit(conn)

        if IS_DEV:
            print(f"[VAULT] Contents viewed: id={request_id}, by={ctx.user_id}")

        return VaultContentsResponse(
            request_id=request_id,
            owner=VaultOwnerRef(id=owner_id, name=row.get("owner_name") or ""),
            allocation_percentage=allocation,
            net_worth=net_worth,
            allocated_amount=VaultContentsResponse.allocated(net_worth, allocation),
            vault_opened_at=row.get("vault_opened_at"),
            assets=[AssetResponse.from_row(a) for a in assets],
            trading_accounts=[TradingAccountResponse.from_row(t) for t in trading],
        )
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[VAULT] Database error reading contents: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
