"""
lifevault/audit.py

Audit trail. Events are written on the caller's connection so they commit
(or roll back) together with the change they describe.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request

from lifevault.config import IS_DEV
from lifevault.db import DBConnection, execute, fetch_all, fetch_value
from lifevault.models import AuditAction, AuditResource
from lifevault.utils import new_id, now_iso, load_json_dict


def _client_info(request: Optional[Request]) -> Tuple[Optional[str], Optional[str]]:
    if request is None:
        return None, None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


def log_event(
    conn: DBConnection,
    action: AuditAction,
    resource: AuditResource,
    user_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> str:
    """Insert one audit row. Does not commit."""
    ip_address, user_agent = _client_info(request)
    log_id = new_id()
    execute(
        conn,
        """
        INSERT INTO audit_logs (id, action, resource, resource_id, user_id, description,
                                metadata, ip_address, user_agent, created_at)
        VALUES (:id, :action, :resource, :resource_id, :user_id, :description,
                :metadata, :ip_address, :user_agent, :created_at)
        """,
        {
            "id": log_id,
            "action": AuditAction(action).value,
            "resource": AuditResource(resource).value,
            "resource_id": resource_id,
            "user_id": user_id,
            "description": description,
            "metadata": json.dumps(metadata or {}, default=str),
            "ip_address": ip_address,
            "user_agent": user_agent,
            "created_at": now_iso(),
        },
    )
    if IS_DEV:
        print(f"[AUDIT] {AuditAction(action).value} {AuditResource(resource).value} "
              f"resource_id={resource_id} user_id={user_id}")
    return log_id


def audit_log_to_dict(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "action": row["action"],
        "resource": row["resource"],
        "resourceId": row.get("resource_id"),
        "userId": row.get("user_id"),
        "userName": row.get("user_name"),
        "description": row.get("description"),
        "metadata": load_json_dict(row.get("metadata")),
        "ipAddress": row.get("ip_address"),
        "userAgent": row.get("user_agent"),
        "createdAt": row["created_at"],
    }


def list_audit_logs(
    conn: DBConnection,
    user_id: Optional[str] = None,
    resource: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Dict[str, Any]], int]:
    """Filtered, newest-first page of audit logs plus the full matching count."""
    clauses = []
    params: Dict[str, Any] = {}
    if user_id:
        clauses.append("l.user_id = :user_id")
        params["user_id"] = user_id
    if resource:
        clauses.append("l.resource = :resource")
        params["resource"] = resource
    if action:
        clauses.append("l.action = :action")
        params["action"] = action
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    total = fetch_value(conn, f"SELECT COUNT(*) FROM audit_logs l {where}", params)
    rows = fetch_all(
        conn,
        f"""
        SELECT l.*, u.name AS user_name
        FROM audit_logs l
        LEFT JOIN users u ON u.id = l.user_id
        {where}
        ORDER BY l.created_at DESC, l.id
        LIMIT :limit OFFSET :offset
        """,
        {**params, "limit": limit, "offset": offset},
    )
    return [audit_log_to_dict(r) for r in rows], int(total)


def recent_activity(conn: DBConnection, user_id: Optional[str] = None, limit: int = 5) -> List[Dict[str, Any]]:
    logs, _ = list_audit_logs(conn, user_id=user_id, limit=limit)
    return logs
