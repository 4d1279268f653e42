"""
lifevault/routes_trading_accounts.py

Trading / demat account CRUD for owners. Each account may point at one of
the owner's nominees; the nominee is embedded in responses.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response

from lifevault.audit import log_event
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.config import IS_DEV
from lifevault.db import DB_ERRORS, commit, execute, fetch_one, fetch_value, get_db, rollback
from lifevault.dependencies import require_capability
from lifevault.models import AuditAction, AuditResource, TradingAccountStatus
from lifevault.schemas_trading import (
    TradingAccountCreateRequest,
    TradingAccountListResponse,
    TradingAccountResponse,
    TradingAccountUpdateRequest,
)
from lifevault.tenant import fetch_all_scoped, fetch_owned
from lifevault.utils import new_id, now_iso

router = APIRouter(
    prefix="/api/trading-accounts",
    tags=["trading-accounts"],
)

NOT_FOUND = "Trading account not found"
REQUIRED_COLUMNS = ("broker_name", "account_number", "current_value", "status", "documents")

_SELECT_WITH_NOMINEE = """
    SELECT t.*, n.name AS nominee_name, n.relation AS nominee_relation
    FROM trading_accounts t
    LEFT JOIN nominees n ON n.id = t.nominee_id AND n.user_id = t.user_id
"""


def _to_columns(values: Dict[str, Any]) -> Dict[str, Any]:
    cols = dict(values)
    if cols.get("status") is not None:
        cols["status"] = cols["status"].value
    if "documents" in cols and cols["documents"] is not None:
        cols["documents"] = json.dumps(cols["documents"])
    if cols.get("opened_date") is not None:
        cols["opened_date"] = cols["opened_date"].isoformat()
    return cols


def _check_nominee(conn, nominee_id: Optional[str], user_id: str) -> None:
    if not nominee_id:
        return
    owned = fetch_one(conn, "SELECT id FROM nominees WHERE id = :id AND user_id = :user_id",
                      {"id": nominee_id, "user_id": user_id})
    if not owned:
        raise HTTPException(status_code=400, detail="Invalid nominee selected")


def _fetch_with_nominee(conn, account_id: str, user_id: str) -> dict:
    rows = fetch_all_scoped(
        conn,
        _SELECT_WITH_NOMINEE + " WHERE t.id = :id AND t.user_id = :user_id",
        {"id": account_id, "user_id": user_id},
        user_id,
        label="get_trading_account",
    )
    if not rows:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return rows[0]


def list_trading_accounts_for_user(
    conn,
    user_id: str,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
):
    where = "t.user_id = :user_id"
    params: Dict[str, Any] = {"user_id": user_id}
    if status:
        where += " AND t.status = :status"
        params["status"] = status

    total = fetch_value(conn, f"SELECT COUNT(*) FROM trading_accounts t WHERE {where}", params)
    sql = _SELECT_WITH_NOMINEE + f" WHERE {where} ORDER BY t.created_at DESC, t.id"
    if limit is not None:
        sql += " LIMIT :limit OFFSET :offset"
        params = {**params, "limit": limit, "offset": offset}
    rows = fetch_all_scoped(conn, sql, params, user_id, label="list_trading_accounts")
    return rows, int(total)


@router.get("", response_model=TradingAccountListResponse,
            dependencies=[Depends(require_capability(Capability.TRADING_READ))])
def list_trading_accounts(
    status: Optional[TradingAccountStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: AuthContext = Depends(require_auth_context),
) -> TradingAccountListResponse:
    conn = get_db()
    try:
        rows, total = list_trading_accounts_for_user(
            conn, ctx.user_id, status.value if status else None, limit=limit, offset=offset
        )
        return TradingAccountListResponse(items=[TradingAccountResponse.from_row(r) for r in rows], total=total)
    except DB_ERRORS as e:
        print(f"[TRADING] Database error listing accounts: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/{account_id}", response_model=TradingAccountResponse,
            dependencies=[Depends(require_capability(Capability.TRADING_READ))])
def get_trading_account(
    account_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> TradingAccountResponse:
    conn = get_db()
    try:
        return TradingAccountResponse.from_row(_fetch_with_nominee(conn, account_id, ctx.user_id))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        print(f"[TRADING] Database error fetching account: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("", response_model=TradingAccountResponse, status_code=201,
             dependencies=[Depends(require_capability(Capability.TRADING_MANAGE))])
def create_trading_account(
    req: TradingAccountCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_auth_context),
) -> TradingAccountResponse:
    now = now_iso()
    row = _to_columns(req.model_dump())
    row.update({"id": new_id(), "user_id": ctx.user_id, "created_at": now, "updated_at": now})

    conn = get_db()
    try:
        _check_nominee(conn, req.nominee_id, ctx.user_id)
        execute(
            conn,
            """
            INSERT INTO trading_accounts (id, user_id, broker_name, account_number, demat_account_number,
                                          nominee_id, current_value, status, notes, documents, opened_date,
                                          created_at, updated_at)
            VALUES (:id, :user_id, :broker_name, :account_number, :demat_account_number,
                    :nominee_id, :current_value, :status, :notes, :documents, :opened_date,
                    :created_at, :updated_at)
            """,
            row,
        )
        log_event(conn, AuditAction.create, AuditResource.trading_account, user_id=ctx.user_id,
                  resource_id=row["id"], description=f"Added trading account at {req.broker_name}", request=request)
        commit(conn)

        if IS_DEV:
            print(f"[TRADING] Created account_id={row['id']}, user_id={ctx.user_id}")
        return TradingAccountResponse.from_row(_fetch_with_nominee(conn, row["id"], ctx.user_id))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[TRADING] Database error creating account: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.put("/{account_id}", response_model=TradingAccountResponse,
            dependencies=[Depends(require_capability(Capability.TRADING_MANAGE))])
def update_trading_account(
    req: TradingAccountUpdateRequest,
    request: Request,
    account_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> TradingAccountResponse:
    updates = req.model_dump(exclude_unset=True)
    nulls = [k for k in REQUIRED_COLUMNS if k in updates and updates[k] is None]
    if nulls:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(nulls)}")

    conn = get_db()
    try:
        fetch_owned(conn, "trading_accounts", account_id, ctx.user_id, NOT_FOUND)
        if updates:
            if "nominee_id" in updates:
                _check_nominee(conn, updates["nominee_id"], ctx.user_id)
            cols = _to_columns(updates)
            cols["updated_at"] = now_iso()
            assignments = ", ".join(f"{c} = :{c}" for c in cols)
            execute(
                conn,
                f"UPDATE trading_accounts SET {assignments} WHERE id = :id AND user_id = :user_id",
                {**cols, "id": account_id, "user_id": ctx.user_id},
            )
            log_event(conn, AuditAction.update, AuditResource.trading_account, user_id=ctx.user_id,
                      resource_id=account_id, description="Trading account updated",
                      metadata={"fields": sorted(updates)}, request=request)
            commit(conn)
        return TradingAccountResponse.from_row(_fetch_with_nominee(conn, account_id, ctx.user_id))
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[TRADING] Database error updating account: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.delete("/{account_id}", status_code=204,
               dependencies=[Depends(require_capability(Capability.TRADING_MANAGE))])
def delete_trading_account(
    request: Request,
    account_id: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Response:
    conn = get_db()
    try:
        existing = fetch_owned(conn, "trading_accounts", account_id, ctx.user_id, NOT_FOUND)
        execute(conn, "DELETE FROM trading_accounts WHERE id = :id AND user_id = :user_id",
                {"id": account_id, "user_id": ctx.user_id})
        log_event(conn, AuditAction.delete, AuditResource.trading_account, user_id=ctx.user_id,
                  resource_id=account_id, description=f"Removed trading account at {existing['broker_name']}",
                  request=request)
        commit(conn)
        return Response(status_code=204)
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[TRADING] Database error deleting account: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
