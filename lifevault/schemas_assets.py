"""
lifevault/schemas_assets.py

Pydantic schemas for owner assets.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import Field, validator

from lifevault.models import AssetCategory, AssetStatus
from lifevault.schemas_common import CamelModel, clean_text, require_text
from lifevault.utils import load_json_list, safe_float


class AssetCreateRequest(CamelModel):
    """Request schema for creating an asset.

    Ownership (user_id) always comes from the auth context, never from the body.
    """
    category: AssetCategory
    institution: str = Field(..., max_length=200)
    account_number: str = Field(..., max_length=100)
    current_value: float = Field(..., ge=0)
    status: AssetStatus = AssetStatus.active
    notes: Optional[str] = Field(None, max_length=2000)
    documents: List[str] = Field(default_factory=list, max_length=20)
    maturity_date: Optional[date] = None
    nominee: Optional[str] = Field(None, max_length=200)

    @validator("institution", pre=True)
    def validate_institution(cls, v):
        return require_text(v, "institution")

    @validator("account_number", pre=True)
    def validate_account_number(cls, v):
        return require_text(v, "accountNumber")

    @validator("notes", "nominee")
    def trim_optional(cls, v):
        return clean_text(v)


class AssetUpdateRequest(CamelModel):
    """Partial update; only fields present in the body are written."""
    category: Optional[AssetCategory] = None
    institution: Optional[str] = Field(None, max_length=200)
    account_number: Optional[str] = Field(None, max_length=100)
    current_value: Optional[float] = Field(None, ge=0)
    status: Optional[AssetStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)
    documents: Optional[List[str]] = Field(None, max_length=20)
    maturity_date: Optional[date] = None
    nominee: Optional[str] = Field(None, max_length=200)

    @validator("institution", pre=True)
    def validate_institution(cls, v):
        return require_text(v, "institution")

    @validator("account_number", pre=True)
    def validate_account_number(cls, v):
        return require_text(v, "accountNumber")

    @validator("notes", "nominee")
    def trim_optional(cls, v):
        return clean_text(v)


class AssetResponse(CamelModel):
    id: str
    category: str
    institution: str
    account_number: str
    current_value: float
    status: str
    notes: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
    maturity_date: Optional[str] = None
    nominee: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict) -> "AssetResponse":
        return cls(
            id=row["id"],
            category=row["category"],
            institution=row["institution"],
            account_number=row["account_number"],
            current_value=safe_float(row["current_value"]),
            status=row["status"],
            notes=row.get("notes"),
            documents=load_json_list(row.get("documents")),
            maturity_date=row.get("maturity_date"),
            nominee=row.get("nominee"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class AssetListResponse(CamelModel):
    items: List[AssetResponse] = Field(default_factory=list)
    total: int = 0
