"""
lifevault/schemas_auth.py

Request/response schemas for registration, OTP + PIN login and sessions.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, validator

from lifevault.schemas_common import (
    CamelModel,
    OTP_RE,
    clean_email,
    clean_phone,
    clean_pin,
    clean_text,
    require_text,
)


class RegisterRequest(CamelModel):
    """Self-service registration. Admin accounts are created via /api/admin/create."""
    name: str = Field(..., max_length=200)
    phone: str
    email: str
    pin: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    role: Literal["owner", "nominee"] = "owner"

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

    @validator("address")
    def trim_address(cls, v):
        return clean_text(v)


class SendOtpRequest(CamelModel):
    phone: str
    role: Optional[Literal["owner", "nominee", "admin", "super_admin"]] = None

    @validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)


class VerifyOtpRequest(CamelModel):
    phone: str
    otp: str
    role: Optional[Literal["owner", "nominee", "admin", "super_admin"]] = None

    @validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator("otp")
    def validate_otp(cls, v):
        if not OTP_RE.match(v or ""):
            raise ValueError("OTP must be exactly 6 digits")
        return v


class VerifyPinRequest(CamelModel):
    user_id: str
    pin: str
    otp_token: str

    @validator("pin")
    def validate_pin(cls, v):
        return clean_pin(v)


class RefreshRequest(CamelModel):
    session_id: str
    refresh_token: str


class LogoutRequest(CamelModel):
    session_id: str
    refresh_token: Optional[str] = None


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    pin: Optional[str] = None

    @validator("name")
    def validate_name(cls, v):
        return require_text(v, "name")

    @validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @validator("pin")
    def validate_pin(cls, v):
        return clean_pin(v)

    @validator("address")
    def trim_address(cls, v):
        return clean_text(v)


class UserResponse(CamelModel):
    """Public user shape. Never includes pin_hash."""
    id: str
    name: str
    phone: str
    email: str
    address: Optional[str] = None
    role: str
    is_active: bool = True
    last_login_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "UserResponse":
        return cls(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            address=row.get("address"),
            role=row["role"],
            is_active=bool(row.get("is_active", 1)),
            last_login_at=row.get("last_login_at"),
            created_at=row.get("created_at"),
        )


class AuthResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    user: UserResponse
    token: str
    refresh_token: str
    session_id: str


class OtpChallengeResponse(CamelModel):
    """Returned by /verify-otp when a PIN step is still required."""
    success: bool = True
    message: str
    user_id: str
    requires_pin: bool = True
    otp_token: str
