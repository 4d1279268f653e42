"""
lifevault/schemas_common.py

Shared pydantic base and field validators.

The API speaks camelCase JSON. Models declare snake_case fields and the
alias generator maps them, so request bodies are accepted in either form
and responses are emitted in camelCase.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from lifevault.utils import normalize_phone

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PIN_RE = re.compile(r"^\d{4}$")
OTP_RE = re.compile(r"^\d{6}$")


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


def clean_phone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    phone = normalize_phone(str(v))
    if not PHONE_RE.match(phone):
        raise ValueError("Invalid phone number")
    return phone


def clean_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    email = str(v).strip().lower()
    if not EMAIL_RE.match(email):
        raise ValueError("Invalid email address")
    return email


def clean_pin(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not PIN_RE.match(str(v)):
        raise ValueError("PIN must be exactly 4 digits")
    return str(v)


def clean_text(v: Optional[str]) -> Optional[str]:
    """Trim whitespace; blank strings become None."""
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def require_text(v: Optional[str], field: str) -> str:
    if v is None or not str(v).strip():
        raise ValueError(f"{field} must not be empty")
    return str(v).strip()
