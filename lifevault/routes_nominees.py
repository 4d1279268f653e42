"""
lifevault/routes_nominees.py

Nominee CRUD for owners.

Invariant: the allocation percentages of one owner's nominees never sum
past 100. Writers lock the owner row (lock_for_update) before reading the
current total, so concurrent creates and updates for one owner run one at a
time.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response

from lifevault.audit import log_event
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.config import IS_DEV
from lifevault.db import DB_ERRORS, commit, execute, fetch_value, get_db, lock_for_update, rollback
from lifevault.dependencies import require_capability
from lifevault.models import ACTIVE_VAULT_STATUSES, AuditAction, AuditResource, NomineeRelation, VaultRequestStatus
from lifevault.schemas_nominees import (
    NomineeCreateRequest,
    NomineeListResponse,
    NomineeResponse,
    NomineeShare,
    NomineeSummaryResponse,
    NomineeUpdateRequest,
)
from lifevault.tenant import fetch_all_scoped, fetch_owned
from lifevault.utils import new_id, now_iso, safe_float

router = APIRouter(
    prefix="/api/nominees",
    tags=["nominees"],
)

NOT_FOUND = "Nominee not found"
MAX_ALLOCATION = 100.0
REQUIRED_COLUMNS = ("name", "relation", "phone", "email", "allocation_percentage", "is_executor", "is_backup")


def allocated_total(conn, user_id: str, exclude_id: Optional[str] = None) -> float:
    """Sum of the owner's allocations, optionally ignoring one nominee."""
    sql = "SELECT COALESCE(SUM(allocation_percentage), 0) FROM nominees WHERE user_id = :user_id"
    params = {"user_id": user_id}
    if exclude_id:
        sql += " AND id != :exclude_id"
        params["exclude_id"] = exclude_id
    return safe_float(fetch_value(conn, sql, params))


def _check_allocation(conn, user_id: str, requested: float, exclude_id: Optional[str] = None) -> None:
    current = allocated_total(conn, user_id, exclude_id)
    if current + requested > MAX_ALLOCATION + 1e-9:
        raise HTTPException(
            status_code=400,
            detail=f"Total allocation percentage cannot exceed 100%. Current total: {current:g}%",
        )


def list_nominees_for_user(conn, user_id: str, relation: Optional[str] = None,
                           limit: Optional[int] = None, offset: int = 0):
    sql = "SELECT * FROM nominees WHERE user_id = :user_id"
    params = {"user_id": user_id}
    if relation:
        sql += " AND relation = :relation"
        params["relation"] = relation
    sql += " ORDER BY allocation_percentage DESC, created_at, id"
    if limit is not None:
        sql += " LIMIT :limit OFFSET :offset"
        params = {**params, "limit": limit, "offset": offset}
    return fetch_all_scoped(conn, sql, params, user_id, label="list_nominees")


def count_nominees_for_user(conn, user_id: str, relation: Optional[str] = None) -> int:
    sql = "SELECT COUNT(*) FROM nominees WHERE user_id = :user_id"
    params = {"user_id": user_id}
    if relation:
        sql += " AND relation = :relation"
        params["relation"] = relation
    return int(fetch_value(conn, sql, params))


def owner_net_worth(conn, user_id: str) -> float:
    assets = fetch_value(conn, "SELECT COALESCE(SUM(current_value), 0) FROM assets WHERE user_id = :user_id",
                         {"user_id": user_id})
    trading = fetch_value(conn, "SELECT COALESCE(SUM(current_value), 0) FROM trading_accounts WHERE user_id = :user_id",
                          {"user_id": user_id})
    return safe_float(assets) + safe_float(trading)


def nominee_distribution(rows, net_worth: float):
    return [
        NomineeShare(
            id=r["id"],
            name=r["name"],
            relation=r["relation"],
            allocation=safe_float(r["allocation_percentage"]),
            amount=round(safe_float(r["allocation_percentage"]) / 100.0 * net_worth, 2),
        )
        for r in rows
    ]


@router.get("", response_model=NomineeListResponse,
            dependencies=[Depends(require_capability(Capability.NOMINEES_READ))])
def list_nominees(
    relation: Optional[NomineeRelation] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: AuthContext = Depends(require_auth_context),
) -> NomineeListResponse:
    """List the caller's nominees, largest share first. total is the full matching count."""
    relation_value = relation.value if relation else None
    conn = get_db()
    try:
        rows = list_nominees_for_user(conn, ctx.user_id, relation_value, limit=limit, offset=offset)
        total = count_nominees_for_user(conn, ctx.user_id, relation_value)
        return NomineeListResponse(items=[NomineeResponse.from_row(r) for r in rows], total=total)
    except DB_ERRORS as e:
        print(f"[NOMINEES] Database error listing nominees: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/summary", response_model=NomineeSummaryResponse,
            dependencies=[Depends(require_capability(Capability.NOMINEES_READ))])
def nominee_summary(ctx: AuthContext = Depends(require_auth_context)) -> NomineeSummaryResponse:
    """Allocation overview: how much of the owner's net worth each nominee receives."""
    conn = get_db()
    try:
        rows = list_nominees_for_user(conn, ctx.user_id)
        net_worth = owner_net_worth(conn, ctx.user_id)
        total_allocation = sum(safe_float(r["allocation_percentage"]) for r in rows)
        return NomineeSummaryResponse(
            total_nominees=len(rows),
            total_allocation=round(total_allocation, 2),
            unallocated=round(max(MAX_ALLOCATION - total_allocation, 0.0), 2),
            net_worth=net_worth,
            nominee_distribution=nominee_distribution(rows, net_worth),
        )
    except DB_ERRORS as e:
        print(f"[NOMINEES] Database error building summary: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/{nominee_id}", response_model=NomineeResponse,
            dependencies=[Depends(require_capability(Capability.NOMINEES_READ))])
def get_nominee(
    nominee_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> NomineeResponse:
    conn = get_db()
    try:
        return NomineeResponse.from_row(fetch_owned(conn, "nominees", nominee_id, ctx.user_id, NOT_FOUND))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        print(f"[NOMINEES] Database error fetching nominee: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("", response_model=NomineeResponse, status_code=201,
             dependencies=[Depends(require_capability(Capability.NOMINEES_MANAGE))])
def create_nominee(
    req: NomineeCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> NomineeResponse:
    now = now_iso()
    row = req.model_dump()
    row.update({
        "id": new_id(),
        "user_id": ctx.user_id,
        "relation": req.relation.value,
        "is_executor": int(req.is_executor),
        "is_backup": int(req.is_backup),
        "created_at": now,
        "updated_at": now,
    })

    conn = get_db()
    try:
        lock_for_update(conn, "users", ctx.user_id)
        _check_allocation(conn, ctx.user_id, req.allocation_percentage)
        execute(
            conn,
            """
            INSERT INTO nominees (id, user_id, name, relation, phone, email, allocation_percentage,
                                  is_executor, is_backup, address, id_proof_type, id_proof_number,
                                  created_at, updated_at)
            VALUES (:id, :user_id, :name, :relation, :phone, :email, :allocation_percentage,
                    :is_executor, :is_backup, :address, :id_proof_type, :id_proof_number,
                    :created_at, :updated_at)
            """,
            row,
        )
        log_event(conn, AuditAction.create, AuditResource.nominee, user_id=ctx.user_id, resource_id=row["id"],
                  description=f"Added nominee {req.name} ({row['relation']})",
                  metadata={"allocation": req.allocation_percentage}, request=request)
        commit(conn)

        if IS_DEV:
            print(f"[NOMINEES] Created nominee_id={row['id']}, user_id={ctx.user_id}")
        return NomineeResponse.from_row(row)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[NOMINEES] Database error creating nominee: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/{nominee_id}", response_model=NomineeResponse,
            dependencies=[Depends(require_capability(Capability.NOMINEES_MANAGE))])
def update_nominee(
    req: NomineeUpdateRequest,
    request: Request,
    nominee_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> NomineeResponse:
    updates = req.model_dump(exclude_unset=True)
    nulls = [k for k in REQUIRED_COLUMNS if k in updates and updates[k] is None]
    if nulls:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(nulls)}")

    conn = get_db()
    try:
        if "allocation_percentage" in updates:
            lock_for_update(conn, "users", ctx.user_id)
        existing = fetch_owned(conn, "nominees", nominee_id, ctx.user_id, NOT_FOUND)
        if not updates:
            return NomineeResponse.from_row(existing)

        if "allocation_percentage" in updates:
            _check_allocation(conn, ctx.user_id, updates["allocation_percentage"], exclude_id=nominee_id)
        if "relation" in updates:
            updates["relation"] = updates["relation"].value
        for flag in ("is_executor", "is_backup"):
            if flag in updates:
                updates[flag] = int(updates[flag])

        updates["updated_at"] = now_iso()
        assignments = ", ".join(f"{c} = :{c}" for c in updates)
        execute(
            conn,
            f"UPDATE nominees SET {assignments} WHERE id = :id AND user_id = :user_id",
            {**updates, "id": nominee_id, "user_id": ctx.user_id},
        )
        log_event(conn, AuditAction.update, AuditResource.nominee, user_id=ctx.user_id, resource_id=nominee_id,
                  description=f"Updated nominee {existing['name']}",
                  metadata={"fields": sorted(k for k in updates if k != "updated_at")}, request=request)
        commit(conn)
        return NomineeResponse.from_row({**existing, **updates})
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[NOMINEES] Database error updating nominee: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.delete("/{nominee_id}", status_code=204,
               dependencies=[Depends(require_capability(Capability.NOMINEES_MANAGE))])
def delete_nominee(
    request: Request,
    nominee_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Response:
    """
    Delete a nominee. Refused while a claim by this nominee is open or approved.
    Trading-account links are cleared; closed (rejected) claims are removed.
    """
    conn = get_db()
    try:
        existing = fetch_owned(conn, "nominees", nominee_id, ctx.user_id, NOT_FOUND)
        blocking = fetch_value(
            conn,
            "SELECT COUNT(*) FROM vault_requests WHERE nominee_id = :id AND status IN (:s1, :s2, :s3)",
            {
                "id": nominee_id,
                "s1": ACTIVE_VAULT_STATUSES[0],
                "s2": ACTIVE_VAULT_STATUSES[1],
                "s3": VaultRequestStatus.verified.value,
            },
        )
        if blocking:
            raise HTTPException(status_code=409, detail="Nominee has an open or approved vault request")

        execute(conn, "UPDATE trading_accounts SET nominee_id = NULL WHERE nominee_id = :id AND user_id = :user_id",
                {"id": nominee_id, "user_id": ctx.user_id})
        execute(conn, "DELETE FROM vault_requests WHERE nominee_id = :id", {"id": nominee_id})
        execute(conn, "DELETE FROM nominees WHERE id = :id AND user_id = :user_id",
                {"id": nominee_id, "user_id": ctx.user_id})
        log_event(conn, AuditAction.delete, AuditResource.nominee, user_id=ctx.user_id, resource_id=nominee_id,
                  description=f"Removed nominee {existing['name']}", request=request)
        commit(conn)
        return Response(status_code=204)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[NOMINEES] Database error deleting nominee: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
