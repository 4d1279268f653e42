"""
lifevault/schemas_admin.py

Pydantic schemas for administration endpoints.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import Field, validator

from lifevault.schemas_auth import UserResponse
from lifevault.schemas_common import CamelModel, clean_email, clean_phone, clean_pin, require_text


class CreateAdminRequest(CamelModel):
    name: str = Field(..., max_length=200)
    phone: str
    email: str
    pin: str

    @validator("name", pre=True)
    def validate_name(cls, v):
        return require_text(v, "name")

    @validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @validator("pin")
    def validate_pin(cls, v):
        return clean_pin(v)


class UserStatusRequest(CamelModel):
    is_active: bool


class UserListResponse(CamelModel):
    items: List[UserResponse] = Field(default_factory=list)
    total: int = 0


class AuditLogListResponse(CamelModel):
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = 0
