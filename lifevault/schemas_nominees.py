"""
lifevault/schemas_nominees.py

Pydantic schemas for nominees.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, validator

from lifevault.models import NomineeRelation
from lifevault.schemas_common import CamelModel, clean_email, clean_phone, clean_text, require_text
from lifevault.utils import safe_float


class NomineeCreateRequest(CamelModel):
    name: str = Field(..., max_length=200)
    relation: NomineeRelation
    phone: str
    email: str
    allocation_percentage: float = Field(..., ge=0, le=100)
    is_executor: bool = False
    is_backup: bool = False
    address: Optional[str] = Field(None, max_length=500)
    id_proof_type: Optional[str] = Field(None, max_length=50)
    id_proof_number: Optional[str] = Field(None, max_length=50)

    @validator("name", pre=True)
    def validate_name(cls, v):
        return require_text(v, "name")

    @validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @validator("address", "id_proof_type", "id_proof_number")
    def trim_optional(cls, v):
        return clean_text(v)


class NomineeUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, max_length=200)
    relation: Optional[NomineeRelation] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    allocation_percentage: Optional[float] = Field(None, ge=0, le=100)
    is_executor: Optional[bool] = None
    is_backup: Optional[bool] = None
    address: Optional[str] = Field(None, max_length=500)
    id_proof_type: Optional[str] = Field(None, max_length=50)
    id_proof_number: Optional[str] = Field(None, max_length=50)

    @validator("name", pre=True)
    def validate_name(cls, v):
        return require_text(v, "name")

    @validator("phone")
    def validate_phone(cls, v):
        return clean_phone(v)

    @validator("email")
    def validate_email(cls, v):
        return clean_email(v)

    @validator("address", "id_proof_type", "id_proof_number")
    def trim_optional(cls, v):
        return clean_text(v)


class NomineeResponse(CamelModel):
    """Nominee as returned to the owner. The ID proof number itself is never echoed."""
    id: str
    name: str
    relation: str
    phone: str
    email: str
    allocation_percentage: float
    is_executor: bool = False
    is_backup: bool = False
    address: Optional[str] = None
    id_proof_type: Optional[str] = None
    has_id_proof: bool = False
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict) -> "NomineeResponse":
        return cls(
            id=row["id"],
            name=row["name"],
            relation=row["relation"],
            phone=row["phone"],
            email=row["email"],
            allocation_percentage=safe_float(row["allocation_percentage"]),
            is_executor=bool(row.get("is_executor")),
            is_backup=bool(row.get("is_backup")),
            address=row.get("address"),
            id_proof_type=row.get("id_proof_type"),
            has_id_proof=bool(row.get("id_proof_number")),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class NomineeRef(CamelModel):
    """Compact nominee embedded in trading accounts and vault requests."""
    id: str
    name: str
    relation: str


class NomineeListResponse(CamelModel):
    items: List[NomineeResponse] = Field(default_factory=list)
    total: int = 0


class NomineeShare(CamelModel):
    id: str
    name: str
    relation: str
    allocation: float
    amount: float


class NomineeSummaryResponse(CamelModel):
    total_nominees: int
    total_allocation: float
    unallocated: float
    net_worth: float
    nominee_distribution: List[NomineeShare] = Field(default_factory=list)
