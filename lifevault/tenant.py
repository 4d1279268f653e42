"""
lifevault/tenant.py

Ownership guardrails for owner-scoped tables (assets, nominees,
trading_accounts, document_validations).

Every owner-scoped query goes through these helpers so a missing
"user_id" filter is caught before rows leak between users.

- In DEV: emit warnings for unsafe access
- In STAGING/PROD: fail fast with HTTP 500
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from lifevault.config import IS_DEV
from lifevault.db import DBConnection, fetch_one, fetch_all

OWNER_SCOPED_TABLES = ("assets", "nominees", "trading_accounts", "document_validations")


def require_user_id(user_id: Optional[str]) -> str:
    """Guardrail: an owner-scoped operation must know whose rows it touches."""
    if not user_id:
        print("[TENANT] Missing user_id for scoped operation")
        raise HTTPException(status_code=500, detail="Ownership scope missing - this is a server error")
    return user_id


def _check_sql_scoped(sql: str, label: str) -> None:
    sql_lower = sql.lower()
    if any(table in sql_lower for table in OWNER_SCOPED_TABLES) and "user_id" not in sql_lower:
        warning_msg = f"[TENANT] Query missing 'user_id' filter{f' in {label}' if label else ''}"
        if IS_DEV:
            print(f"{warning_msg} (DEV warning)")
            print(f"[TENANT][DEV] SQL: {sql.strip()[:100]}...")
        else:
            print(f"{warning_msg} (PRODUCTION - failing fast)")
            raise HTTPException(status_code=500, detail="Unsafe scoped query detected")


def assert_rows_owned(rows: List[Dict[str, Any]], user_id: str, label: str = "") -> None:
    """Guardrail: every returned row must carry the caller's user_id."""
    mismatches = [
        i for i, row in enumerate(rows)
        if row.get("user_id") is not None and row.get("user_id") != user_id
    ]
    if not mismatches:
        return

    error_msg = f"[TENANT] Ownership violation{f' in {label}' if label else ''}: {len(mismatches)} row(s)"
    if IS_DEV:
        print(f"{error_msg} (DEV warning)")
    else:
        print(f"{error_msg} (PRODUCTION - failing fast)")
        raise HTTPException(status_code=500, detail="Ownership violation detected - this is a server error")


def fetch_all_scoped(
    conn: DBConnection,
    sql: str,
    params: Dict[str, Any],
    user_id: str,
    label: str = "",
) -> List[Dict[str, Any]]:
    """Run an owner-scoped SELECT and verify the result belongs to user_id."""
    require_user_id(user_id)
    _check_sql_scoped(sql, label)
    rows = fetch_all(conn, sql, params)
    assert_rows_owned(rows, user_id, label)
    return rows


def fetch_owned(
    conn: DBConnection,
    table: str,
    row_id: str,
    user_id: str,
    not_found: str = "Not found",
) -> Dict[str, Any]:
    """
    Fetch a row and enforce ownership.
    Returns the row if owned by user_id, raises 404 otherwise, so a foreign
    row is indistinguishable from a missing one.
    """
    require_user_id(user_id)
    if table not in OWNER_SCOPED_TABLES:
        raise ValueError(f"{table} is not an owner-scoped table")
    row = fetch_one(
        conn,
        f"SELECT * FROM {table} WHERE id = :id AND user_id = :user_id",
        {"id": row_id, "user_id": user_id},
    )
    if row is None:
        raise HTTPException(status_code=404, detail=not_found)
    return row
