from enum import Enum
from typing import List


# Enums
class UserRole(str, Enum):
    owner = "owner"
    nominee = "nominee"
    admin = "admin"
    super_admin = "super_admin"


class AssetCategory(str, Enum):
    bank = "Bank"
    lic = "LIC"
    pf = "PF"
    property = "Property"
    stocks = "Stocks"
    crypto = "Crypto"
    mutual_fund = "Mutual Fund"
    fixed_deposit = "Fixed Deposit"
    insurance = "Insurance"
    other = "Other"


class AssetStatus(str, Enum):
    active = "Active"
    inactive = "Inactive"
    matured = "Matured"
    closed = "Closed"


class NomineeRelation(str, Enum):
    spouse = "Spouse"
    child = "Child"
    parent = "Parent"
    sibling = "Sibling"
    other = "Other"


class TradingAccountStatus(str, Enum):
    active = "Active"
    inactive = "Inactive"
    suspended = "Suspended"
    closed = "Closed"


class VaultRequestStatus(str, Enum):
    pending = "pending"
    under_review = "under_review"
    verified = "verified"
    rejected = "rejected"


class AuditAction(str, Enum):
    create = "CREATE"
    read = "READ"
    update = "UPDATE"
    delete = "DELETE"
    login = "LOGIN"
    logout = "LOGOUT"
    pin_verify = "PIN_VERIFY"
    otp_send = "OTP_SEND"
    otp_verify = "OTP_VERIFY"
    vault_request = "VAULT_REQUEST"
    vault_approve = "VAULT_APPROVE"
    vault_reject = "VAULT_REJECT"
    file_upload = "FILE_UPLOAD"
    file_download = "FILE_DOWNLOAD"


class AuditResource(str, Enum):
    user = "USER"
    asset = "ASSET"
    nominee = "NOMINEE"
    vault_request = "VAULT_REQUEST"
    document = "DOCUMENT"
    trading_account = "TRADING_ACCOUNT"
    auth = "AUTH"


# Vault requests in these states block a second claim on the same nominee record
ACTIVE_VAULT_STATUSES: List[str] = [
    VaultRequestStatus.pending.value,
    VaultRequestStatus.under_review.value,
]

# Allowed admin review transitions; verified and rejected are terminal
VAULT_TRANSITIONS = {
    VaultRequestStatus.pending.value: {
        VaultRequestStatus.under_review.value,
        VaultRequestStatus.verified.value,
        VaultRequestStatus.rejected.value,
    },
    VaultRequestStatus.under_review.value: {
        VaultRequestStatus.verified.value,
        VaultRequestStatus.rejected.value,
    },
    VaultRequestStatus.verified.value: set(),
    VaultRequestStatus.rejected.value: set(),
}

ADMIN_ROLES = {UserRole.admin.value, UserRole.super_admin.value}

# Dashboard allocation chart colours, assigned in descending-amount order
ALLOCATION_COLORS = ["#1E3A8A", "#3B82F6", "#60A5FA", "#93C5FD", "#DBEAFE", "#EFF6FF"]
