# frontend/ui_helpers.py
# Pure display helpers for the LifeVault dashboard (no Streamlit calls)

import math
from typing import Any, Dict, List, Optional

import pandas as pd

OWNER_PAGES = ["Dashboard", "Assets", "Nominees", "Trading Accounts", "Vault", "Documents", "Profile"]
NOMINEE_PAGES = ["Dashboard", "Vault", "Documents", "Profile"]
ADMIN_PAGES = ["Dashboard", "Vault", "Documents", "Admin", "Profile"]
PUBLIC_PAGES = ["Login", "Register"]

STATUS_BADGES = {
    "pending": "🟡 Pending",
    "under_review": "🔵 Under review",
    "verified": "🟢 Verified",
    "rejected": "🔴 Rejected",
}

# Review transitions offered in the admin form
NEXT_STATUSES = {
    "pending": ["under_review", "verified", "rejected"],
    "under_review": ["verified", "rejected"],
}


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_money(value: Optional[float]) -> str:
    """Rupees with Indian digit grouping, e.g. ₹12,50,000."""
    if _missing(value):
        return "n/a"
    rounded = int(round(float(value)))
    sign = "-" if rounded < 0 else ""
    digits = str(abs(rounded))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}₹{digits}"


def format_pct(value: Optional[float]) -> str:
    """Percent values arrive as 0-100."""
    if _missing(value):
        return "n/a"
    return f"{float(value):.1f}%"


def format_date(value: Optional[str]) -> str:
    if not value:
        return "-"
    return str(value)[:10]


def status_badge(status: Optional[str]) -> str:
    if not status:
        return "-"
    return STATUS_BADGES.get(status, status.replace("_", " ").title())


def risk_level(score: Optional[float]) -> str:
    """Bucket a fraud risk score the same way the document stats do."""
    if _missing(score):
        return "unknown"
    if score < 20:
        return "low"
    if score < 50:
        return "medium"
    return "high"


def pages_for_role(role: Optional[str]) -> List[str]:
    if role in ("admin", "super_admin"):
        return ADMIN_PAGES
    if role == "nominee":
        return NOMINEE_PAGES
    if role == "owner":
        return OWNER_PAGES
    return PUBLIC_PAGES


def default_page(role: Optional[str]) -> str:
    return pages_for_role(role)[0]


def review_options(status: Optional[str]) -> List[str]:
    return NEXT_STATUSES.get(status or "", [])


def allocation_frame(allocation: List[Dict[str, Any]]) -> pd.DataFrame:
    """Asset allocation rows -> DataFrame indexed by category for st.bar_chart."""
    if not allocation:
        return pd.DataFrame(columns=["amount", "share"])
    df = pd.DataFrame(allocation)
    df = df.rename(columns={"name": "category", "value": "share"})
    return df.set_index("category")[["amount", "share"]]


def records_frame(items: List[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    """
    Project API items onto display columns.

    ``columns`` maps response keys to headers. Missing keys become empty cells
    and nested {id, name, relation} refs collapse to the name.
    """
    rows = []
    for item in items:
        row = {}
        for key, header in columns.items():
            value = item.get(key)
            if isinstance(value, dict):
                value = value.get("name")
            elif isinstance(value, list):
                value = len(value)
            row[header] = value
        rows.append(row)
    return pd.DataFrame(rows, columns=list(columns.values()))


def remaining_allocation(nominees: List[Dict[str, Any]], exclude_id: Optional[str] = None) -> float:
    """Percent still assignable, optionally ignoring the nominee being edited."""
    used = sum(float(n.get("allocationPercentage") or 0) for n in nominees if n.get("id") != exclude_id)
    return max(0.0, round(100.0 - used, 2))


def clean_payload(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop blank optional form values before sending them."""
    return {k: v for k, v in values.items() if v is not None and v != ""}
