# lifevault/utils.py
# Small shared helpers (time, ids, phone normalization, token hashing)

import hashlib
import json
import re
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, List, Optional

_PHONE_STRIP = re.compile(r"[\s\-()]")


def safe_float(x: Any) -> float:
    try:
        if x is None:
            return 0.0
        return float(x)
    except (TypeError, ValueError):
        return 0.0


def utcnow() -> datetime:
    return datetime.utcnow()


def to_iso(dt: datetime) -> str:
    return dt.isoformat() + "Z"


def now_iso() -> str:
    return to_iso(utcnow())


def iso_in(**delta) -> str:
    """ISO timestamp offset from now, e.g. iso_in(minutes=5)."""
    return to_iso(utcnow() + timedelta(**delta))


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.rstrip("Z"))


def is_past(value: Optional[str]) -> bool:
    parsed = parse_iso(value)
    return parsed is not None and utcnow() > parsed


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_phone(phone: str) -> str:
    """
    Normalize an Indian mobile number to E.164-ish form.

    "98765 43210" -> "+919876543210"
    "919876543210" -> "+919876543210"
    Anything else is returned with separators removed.
    """
    cleaned = _PHONE_STRIP.sub("", phone or "")
    if cleaned.isdigit() and len(cleaned) == 10:
        return "+91" + cleaned
    if cleaned.startswith("91") and not cleaned.startswith("+"):
        return "+" + cleaned
    return cleaned


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def verify_token_hash(token: str, token_hash: str) -> bool:
    return secrets.compare_digest(hash_token(token), token_hash or "")


def load_json_list(raw: Optional[str]) -> List[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return value if isinstance(value, list) else []


def load_json_dict(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}
