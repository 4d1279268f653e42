"""
lifevault/routes_assets.py

Asset CRUD endpoints with owner-scoped queries and capability enforcement.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Read operations require capability "assets:read"
- Write operations require capability "assets:manage"
- All queries filtered by user_id from the auth context
- A foreign asset id is reported as 404, never 403
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response

from lifevault.audit import log_event
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.config import IS_DEV
from lifevault.db import DB_ERRORS, commit, execute, fetch_value, get_db, rollback
from lifevault.dependencies import require_capability
from lifevault.models import AssetCategory, AssetStatus, AuditAction, AuditResource
from lifevault.schemas_assets import (
    AssetCreateRequest,
    AssetListResponse,
    AssetResponse,
    AssetUpdateRequest,
)
from lifevault.tenant import fetch_all_scoped, fetch_owned
from lifevault.utils import new_id, now_iso

router = APIRouter(
    prefix="/api/assets",
    tags=["assets"],
)

NOT_FOUND = "Asset not found"
# Columns that may not be cleared with an explicit null
REQUIRED_COLUMNS = ("category", "institution", "account_number", "current_value", "status", "documents")


def _to_columns(values: Dict[str, Any]) -> Dict[str, Any]:
    """Map validated request fields to DB column values."""
    cols = dict(values)
    for key in ("category", "status"):
        if cols.get(key) is not None:
            cols[key] = cols[key].value if hasattr(cols[key], "value") else cols[key]
    if "documents" in cols and cols["documents"] is not None:
        cols["documents"] = json.dumps(cols["documents"])
    if cols.get("maturity_date") is not None:
        cols["maturity_date"] = cols["maturity_date"].isoformat()
    return cols


def list_assets_for_user(
    conn,
    user_id: str,
    category: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
):
    """Owner-scoped asset query shared by this router, the dashboard and the vault."""
    where = ["user_id = :user_id"]
    params: Dict[str, Any] = {"user_id": user_id}
    if category:
        where.append("category = :category")
        params["category"] = category
    if status:
        where.append("status = :status")
        params["status"] = status
    if q:
        where.append("(LOWER(institution) LIKE :q OR LOWER(COALESCE(notes, '')) LIKE :q)")
        params["q"] = f"%{q.lower()}%"
    where_sql = " AND ".join(where)

    total = fetch_value(conn, f"SELECT COUNT(*) FROM assets WHERE {where_sql}", params)
    sql = f"SELECT * FROM assets WHERE {where_sql} ORDER BY created_at DESC, id"
    if limit is not None:
        sql += " LIMIT :limit OFFSET :offset"
        params = {**params, "limit": limit, "offset": offset}
    rows = fetch_all_scoped(conn, sql, params, user_id, label="list_assets")
    return rows, int(total)


@router.get("", response_model=AssetListResponse, dependencies=[Depends(require_capability(Capability.ASSETS_READ))])
def list_assets(
    category: Optional[AssetCategory] = Query(None),
    status: Optional[AssetStatus] = Query(None),
    q: Optional[str] = Query(None, max_length=100, description="Search institution and notes"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: AuthContext = Depends(require_auth_context),
) -> AssetListResponse:
    """List the caller's assets, newest first. total is the full matching count."""
    conn = get_db()
    try:
        rows, total = list_assets_for_user(
            conn,
            ctx.user_id,
            category=category.value if category else None,
            status=status.value if status else None,
            q=q.strip() if q else None,
            limit=limit,
            offset=offset,
        )
        return AssetListResponse(items=[AssetResponse.from_row(r) for r in rows], total=total)
    except DB_ERRORS as e:
        print(f"[ASSETS] Database error listing assets: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/{asset_id}", response_model=AssetResponse, dependencies=[Depends(require_capability(Capability.ASSETS_READ))])
def get_asset(
    asset_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> AssetResponse:
    conn = get_db()
    try:
        row = fetch_owned(conn, "assets", asset_id, ctx.user_id, NOT_FOUND)
        return AssetResponse.from_row(row)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        print(f"[ASSETS] Database error fetching asset: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("", response_model=AssetResponse, status_code=201,
             dependencies=[Depends(require_capability(Capability.ASSETS_MANAGE))])
def create_asset(
    req: AssetCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> AssetResponse:
    """
    Create an asset for the caller.

    Raises:
        HTTPException(403): Missing capability (handled by dependency)
        HTTPException(422): Invalid body
        HTTPException(500): Database error
    """
    now = now_iso()
    row = _to_columns(req.model_dump())
    row.update({"id": new_id(), "user_id": ctx.user_id, "created_at": now, "updated_at": now})

    conn = get_db()
    try:
        execute(
            conn,
            """
            INSERT INTO assets (id, user_id, category, institution, account_number, current_value,
                                status, notes, documents, maturity_date, nominee, created_at, updated_at)
            VALUES (:id, :user_id, :category, :institution, :account_number, :current_value,
                    :status, :notes, :documents, :maturity_date, :nominee, :created_at, :updated_at)
            """,
            row,
        )
        log_event(conn, AuditAction.create, AuditResource.asset, user_id=ctx.user_id, resource_id=row["id"],
                  description=f"Created {row['category']} asset at {row['institution']}", request=request)
        commit(conn)

        if IS_DEV:
            print(f"[ASSETS] Created asset_id={row['id']}, user_id={ctx.user_id}")

        return AssetResponse.from_row(row)
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[ASSETS] Database error creating asset: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/{asset_id}", response_model=AssetResponse,
            dependencies=[Depends(require_capability(Capability.ASSETS_MANAGE))])
def update_asset(
    req: AssetUpdateRequest,
    request: Request,
    asset_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> AssetResponse:
    """Partial update: only fields present in the body change."""
    updates = req.model_dump(exclude_unset=True)
    nulls = [k for k in REQUIRED_COLUMNS if k in updates and updates[k] is None]
    if nulls:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(nulls)}")

    conn = get_db()
    try:
        existing = fetch_owned(conn, "assets", asset_id, ctx.user_id, NOT_FOUND)
        if not updates:
            return AssetResponse.from_row(existing)

        cols = _to_columns(updates)
        cols["updated_at"] = now_iso()
        assignments = ", ".join(f"{c} = :{c}" for c in cols)
        execute(
            conn,
            f"UPDATE assets SET {assignments} WHERE id = :id AND user_id = :user_id",
            {**cols, "id": asset_id, "user_id": ctx.user_id},
        )
        log_event(conn, AuditAction.update, AuditResource.asset, user_id=ctx.user_id, resource_id=asset_id,
                  description="Asset updated", metadata={"fields": sorted(updates)}, request=request)
        commit(conn)

        return AssetResponse.from_row({**existing, **cols})
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[ASSETS] Database error updating asset: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.delete("/{asset_id}", status_code=204,
               dependencies=[Depends(require_capability(Capability.ASSETS_MANAGE))])
def delete_asset(
    request: Request,
    asset_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Response:
    conn = get_db()
    try:
        existing = fetch_owned(conn, "assets", asset_id, ctx.user_id, NOT_FOUND)
        execute(conn, "DELETE FROM assets WHERE id = :id AND user_id = :user_id",
                {"id": asset_id, "user_id": ctx.user_id})
        log_event(conn, AuditAction.delete, AuditResource.asset, user_id=ctx.user_id, resource_id=asset_id,
                  description=f"Deleted {existing['category']} asset at {existing['institution']}", request=request)
        commit(conn)

        if IS_DEV:
            print(f"[ASSETS] Deleted asset_id={asset_id}, user_id={ctx.user_id}")
        return Response(status_code=204)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[ASSETS] Database error deleting asset: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
