"""
lifevault/routes_dashboard.py

Aggregated dashboard statistics. The shape of /stats depends on the
caller's role (owner, nominee or admin).
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from lifevault.audit import recent_activity
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.db import DB_ERRORS, fetch_all, fetch_value, get_db
from lifevault.dependencies import require_capability
from lifevault.models import ALLOCATION_COLORS, UserRole, VaultRequestStatus
from lifevault.routes_assets import list_assets_for_user
from lifevault.routes_nominees import list_nominees_for_user
from lifevault.routes_trading_accounts import list_trading_accounts_for_user
from lifevault.routes_vault import count_by_status
from lifevault.schemas_assets import AssetListResponse, AssetResponse
from lifevault.schemas_nominees import NomineeListResponse, NomineeResponse
from lifevault.schemas_trading import TradingAccountListResponse, TradingAccountResponse
from lifevault.utils import safe_float

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
)


def asset_allocation(assets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group asset value by category; value is the rounded share in percent."""
    by_category: "OrderedDict[str, float]" = OrderedDict()
    for a in assets:
        by_category[a["category"]] = by_category.get(a["category"], 0.0) + safe_float(a["current_value"])

    total = sum(by_category.values())
    ordered = sorted(by_category.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        {
            "name": category,
            "value": round(amount / total * 100) if total > 0 else 0,
            "amount": round(amount, 2),
            "color": ALLOCATION_COLORS[i % len(ALLOCATION_COLORS)],
        }
        for i, (category, amount) in enumerate(ordered)
    ]


def owner_stats(conn, user_id: str) -> Dict[str, Any]:
    assets, _ = list_assets_for_user(conn, user_id)
    nominees = list_nominees_for_user(conn, user_id)
    trading, _ = list_trading_accounts_for_user(conn, user_id)

    total_value = sum(safe_float(a["current_value"]) for a in assets)
    trading_value = sum(safe_float(t["current_value"]) for t in trading)
    net_worth = total_value + trading_value

    return {
        "role": UserRole.owner.value,
        "totalAssets": len(assets),
        "totalNominees": len(nominees),
        "totalTradingAccounts": len(trading),
        "totalValue": round(total_value, 2),
        "tradingValue": round(trading_value, 2),
        "netWorth": round(net_worth, 2),
        "totalAllocation": round(sum(safe_float(n["allocation_percentage"]) for n in nominees), 2),
        "assetAllocation": asset_allocation(assets),
        "nomineeDistribution": [
            {
                "name": f"{n['name']} ({n['relation']})",
                "allocation": safe_float(n["allocation_percentage"]),
                "amount": round(safe_float(n["allocation_percentage"]) / 100.0 * net_worth, 2),
            }
            for n in nominees
        ],
        "recentActivity": recent_activity(conn, user_id),
    }


def nominee_stats(conn, ctx: AuthContext) -> Dict[str, Any]:
    linked = fetch_all(
        conn,
        """
        SELECT n.id, n.user_id, n.relation, n.allocation_percentage, u.name AS owner_name
        FROM nominees n
        JOIN users u ON u.id = n.user_id
        WHERE n.phone = :phone OR LOWER(n.email) = :email
        ORDER BY n.created_at
        """,
        {"phone": ctx.phone, "email": ctx.email.lower()},
    )
    counts = count_by_status(conn, "v.submitted_by = :user_id", {"user_id": ctx.user_id})

    verified = fetch_all(
        conn,
        """
        SELECT v.owner_id, n.allocation_percentage
        FROM vault_requests v
        JOIN nominees n ON n.id = v.nominee_id
        WHERE v.submitted_by = :user_id AND v.status = :status
        """,
        {"user_id": ctx.user_id, "status": VaultRequestStatus.verified.value},
    )
    accessible_assets = 0
    accessible_value = 0.0
    for v in verified:
        assets, asset_count = list_assets_for_user(conn, v["owner_id"])
        trading, trading_count = list_trading_accounts_for_user(conn, v["owner_id"])
        worth = sum(safe_float(a["current_value"]) for a in assets) + sum(safe_float(t["current_value"]) for t in trading)
        accessible_assets += asset_count + trading_count
        accessible_value += worth * safe_float(v["allocation_percentage"]) / 100.0

    return {
        "role": UserRole.nominee.value,
        "linkedOwners": len({n["user_id"] for n in linked}),
        "nominations": [
            {
                "nomineeId": n["id"],
                "ownerName": n["owner_name"],
                "relation": n["relation"],
                "allocationPercentage": safe_float(n["allocation_percentage"]),
            }
            for n in linked
        ],
        "vaultRequests": {
            "total": sum(counts.values()),
            "pending": counts["pending"],
            "underReview": counts["under_review"],
            "verified": counts["verified"],
            "rejected": counts["rejected"],
        },
        "accessibleAssets": accessible_assets,
        "accessibleValue": round(accessible_value, 2),
        "recentActivity": recent_activity(conn, ctx.user_id),
    }


def admin_stats(conn, role: str) -> Dict[str, Any]:
    counts = count_by_status(conn)
    users = {r.value: 0 for r in UserRole}
    for row in fetch_all(conn, "SELECT role, COUNT(*) AS n FROM users GROUP BY role"):
        users[row["role"]] = int(row["n"])
    valid_docs = fetch_value(conn, "SELECT COUNT(*) FROM document_validations WHERE validation_status = 'valid'")
    total_docs = fetch_value(conn, "SELECT COUNT(*) FROM document_validations")

    return {
        "role": role,
        "adminStats": {
            "totalRequests": sum(counts.values()),
            "pendingRequests": counts["pending"],
            "underReviewRequests": counts["under_review"],
            "approvedRequests": counts["verified"],
            "rejectedRequests": counts["rejected"],
        },
        "users": users,
        "documents": {
            "total": int(total_docs),
            "valid": int(valid_docs),
            "invalid": int(total_docs) - int(valid_docs),
        },
        "recentActivity": recent_activity(conn, None, limit=10),
    }


@router.get("/stats", dependencies=[Depends(require_capability(Capability.DASHBOARD_VIEW))])
def dashboard_stats(ctx: AuthContext = Depends(require_auth_context)) -> Dict[str, Any]:
    conn = get_db()
    try:
        if ctx.is_admin:
            return admin_stats(conn, ctx.role)
        if ctx.role == UserRole.nominee.value:
            return nominee_stats(conn, ctx)
        return owner_stats(conn, ctx.user_id)
    except DB_ERRORS as e:
        print(f"[DASHBOARD] Database error building stats: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/batch", dependencies=[Depends(require_capability(Capability.ASSETS_READ))])
def dashboard_batch(ctx: AuthContext = Depends(require_auth_context)) -> Dict[str, Any]:
    """Stats plus the three owner lists in one round trip."""
    conn = get_db()
    try:
        assets, _ = list_assets_for_user(conn, ctx.user_id)
        nominees = list_nominees_for_user(conn, ctx.user_id)
        trading, _ = list_trading_accounts_for_user(conn, ctx.user_id)
        return {
            "stats": owner_stats(conn, ctx.user_id),
            "assets": [AssetResponse.from_row(a).model_dump(by_alias=True) for a in assets],
            "nominees": [NomineeResponse.from_row(n).model_dump(by_alias=True) for n in nominees],
            "tradingAccounts": [TradingAccountResponse.from_row(t).model_dump(by_alias=True) for t in trading],
        }
    except DB_ERRORS as e:
        print(f"[DASHBOARD] Database error building batch: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


# Aliases kept for dashboard clients that read lists under /api/dashboard
@router.get("/assets", response_model=AssetListResponse,
            dependencies=[Depends(require_capability(Capability.ASSETS_READ))])
def dashboard_assets(ctx: AuthContext = Depends(require_auth_context)) -> AssetListResponse:
    conn = get_db()
    try:
        rows, total = list_assets_for_user(conn, ctx.user_id)
        return AssetListResponse(items=[AssetResponse.from_row(r) for r in rows], total=total)
    except DB_ERRORS as e:
        print(f"[DASHBOARD] Database error listing assets: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/nominees", response_model=NomineeListResponse,
            dependencies=[Depends(require_capability(Capability.NOMINEES_READ))])
def dashboard_nominees(ctx: AuthContext = Depends(require_auth_context)) -> NomineeListResponse:
    conn = get_db()
    try:
        rows = list_nominees_for_user(conn, ctx.user_id)
        return NomineeListResponse(items=[NomineeResponse.from_row(r) for r in rows], total=len(rows))
    except DB_ERRORS as e:
        print(f"[DASHBOARD] Database error listing nominees: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/trading-accounts", response_model=TradingAccountListResponse,
            dependencies=[Depends(require_capability(Capability.TRADING_READ))])
def dashboard_trading_accounts(ctx: AuthContext = Depends(require_auth_context)) -> TradingAccountListResponse:
    conn = get_db()
    try:
        rows, total = list_trading_accounts_for_user(conn, ctx.user_id)
        return TradingAccountListResponse(items=[TradingAccountResponse.from_row(r) for r in rows], total=total)
    except DB_ERRORS as e:
        print(f"[DASHBOARD] Database error listing trading accounts: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()
