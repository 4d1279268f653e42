"""
lifevault/schemas_trading.py

Pydantic schemas for trading / demat accounts.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import Field, validator

from lifevault.models import TradingAccountStatus
from lifevault.schemas_common import CamelModel, clean_text, require_text
from lifevault.schemas_nominees import NomineeRef
from lifevault.utils import load_json_list, safe_float


class TradingAccountCreateRequest(CamelModel):
    broker_name: str = Field(..., max_length=200)
    account_number: str = Field(..., max_length=100, description="Client id at the broker")
    demat_account_number: Optional[str] = Field(None, max_length=100)
    nominee_id: Optional[str] = None
    current_value: float = Field(0, ge=0)
    status: TradingAccountStatus = TradingAccountStatus.active
    notes: Optional[str] = Field(None, max_length=2000)
    documents: List[str] = Field(default_factory=list, max_length=20)
    opened_date: Optional[date] = None

    @validator("broker_name", pre=True)
    def validate_broker_name(cls, v):
        return require_text(v, "brokerName")

    @validator("account_number", pre=True)
    def validate_account_number(cls, v):
        return require_text(v, "accountNumber")

    @validator("demat_account_number", "notes", "nominee_id")
    def trim_optional(cls, v):
        return clean_text(v)


class TradingAccountUpdateRequest(CamelModel):
    broker_name: Optional[str] = Field(None, max_length=200)
    account_number: Optional[str] = Field(None, max_length=100)
    demat_account_number: Optional[str] = Field(None, max_length=100)
    nominee_id: Optional[str] = None
    current_value: Optional[float] = Field(None, ge=0)
    status: Optional[TradingAccountStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)
    documents: Optional[List[str]] = Field(None, max_length=20)
    opened_date: Optional[date] = None

    @validator("broker_name", pre=True)
    def validate_broker_name(cls, v):
        return require_text(v, "brokerName")

    @validator("account_number", pre=True)
    def validate_account_number(cls, v):
        return require_text(v, "accountNumber")

    @validator("demat_account_number", "notes", "nominee_id")
    def trim_optional(cls, v):
        return clean_text(v)


class TradingAccountResponse(CamelModel):
    id: str
    broker_name: str
    account_number: str
    demat_account_number: Optional[str] = None
    nominee_id: Optional[str] = None
    nominee: Optional[NomineeRef] = None
    current_value: float
    status: str
    notes: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
    opened_date: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict) -> "TradingAccountResponse":
        """Row may carry nominee_name / nominee_relation from a LEFT JOIN."""
        nominee = None
        if row.get("nominee_id") and row.get("nominee_name"):
            nominee = NomineeRef(
                id=row["nominee_id"],
                name=row["nominee_name"],
                relation=row["nominee_relation"],
            )
        return cls(
            id=row["id"],
            broker_name=row["broker_name"],
            account_number=row["account_number"],
            demat_account_number=row.get("demat_account_number"),
            nominee_id=row.get("nominee_id"),
            nominee=nominee,
            current_value=safe_float(row["current_value"]),
            status=row["status"],
            notes=row.get("notes"),
            documents=load_json_list(row.get("documents")),
            opened_date=row.get("opened_date"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class TradingAccountListResponse(CamelModel):
    items: List[TradingAccountResponse] = Field(default_factory=list)
    total: int = 0
