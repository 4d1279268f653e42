"""
lifevault/schemas_vault.py

Pydantic schemas for the vault request (claim) workflow.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, validator

from lifevault.models import VaultRequestStatus
from lifevault.schemas_assets import AssetResponse
from lifevault.schemas_common import CamelModel, clean_email, clean_phone, clean_text, require_text
from lifevault.schemas_nominees import NomineeRef
from lifevault.schemas_trading import TradingAccountResponse
from lifevault.utils import safe_float


class VaultRequestCreate(CamelModel):
    nominee_id: str
    relation_to_deceased: str = Field(..., max_length=100)
    phone_number: str
    email: str
    nominee_name: Optional[str] = Field(None, max_length=200)
    death_certificate_url: Optional[str] = Field(None, max_length=500)
    document_validation_id: Optional[str] = None

    @validator("relation_to_deceased", pre=True)
    def validate_relation(cls, v):
        return require_text(v, "relationToDeceased")

    @validator("phone_number")
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @validator("nominee_name", "death_certificate_url", "document_validation_id")
    def trim_optional(cls, v):
        return clean_text(v)


class VaultStatusUpdate(CamelModel):
    status: VaultRequestStatus
    admin_notes: Optional[str] = Field(None, max_length=2000)

    @validator("admin_notes")
    def trim_notes(cls, v):
        return clean_text(v)


class VaultReviewNotes(CamelModel):
    admin_notes: Optional[str] = Field(None, max_length=2000)

    @validator("admin_notes")
    def trim_notes(cls, v):
        return clean_text(v)


class VaultRequestResponse(CamelModel):
    id: str
    nominee_id: str
    nominee: Optional[NomineeRef] = None
    owner_id: str
    owner_name: Optional[str] = None
    submitted_by: str
    nominee_name: str
    relation_to_deceased: str
    phone_number: str
    email: str
    death_certificate_url: Optional[str] = None
    document_validation_id: Optional[str] = None
    status: str
    admin_notes: Optional[str] = None
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    vault_opened_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict) -> "VaultRequestResponse":
        """Row may carry n_name / n_relation / owner_name from joins."""
        nominee = None
        if row.get("n_name"):
            nominee = NomineeRef(id=row["nominee_id"], name=row["n_name"], relation=row["n_relation"])
        return cls(
            id=row["id"],
            nominee_id=row["nominee_id"],
            nominee=nominee,
            owner_id=row["owner_id"],
            owner_name=row.get("owner_name"),
            submitted_by=row["submitted_by"],
            nominee_name=row["nominee_name"],
            relation_to_deceased=row["relation_to_deceased"],
            phone_number=row["phone_number"],
            email=row["email"],
            death_certificate_url=row.get("death_certificate_url"),
            document_validation_id=row.get("document_validation_id"),
            status=row["status"],
            admin_notes=row.get("admin_notes"),
            reviewed_at=row.get("reviewed_at"),
            reviewed_by=row.get("reviewed_by"),
            vault_opened_at=row.get("vault_opened_at"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class VaultRequestListResponse(CamelModel):
    items: List[VaultRequestResponse] = Field(default_factory=list)
    total: int = 0


class VaultOwnerRef(CamelModel):
    id: str
    name: str


class VaultContentsResponse(CamelModel):
    """What an approved claimant can see of the owner's vault."""
    request_id: str
    owner: VaultOwnerRef
    allocation_percentage: float
    net_worth: float
    allocated_amount: float
    vault_opened_at: Optional[str] = None
    assets: List[AssetResponse] = Field(default_factory=list)
    trading_accounts: List[TradingAccountResponse] = Field(default_factory=list)

    @staticmethod
    def allocated(net_worth: float, allocation_percentage: float) -> float:
        return round(safe_float(net_worth) * safe_float(allocation_percentage) / 100.0, 2)
