"""
lifevault/authz.py

Role-based capabilities. Single source of truth for what each role may do;
route handlers declare the capability they need via
dependencies.require_capability().

Role summary:
- owner:       manages their own assets, nominees and trading accounts
- nominee:     submits vault requests and reads an opened vault
- admin:       reviews vault requests, manages users, reads audit logs
- super_admin: admin + creating other admins
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Set


class Capability(str, Enum):
    """Available capabilities in LifeVault."""

    ASSETS_READ = "assets:read"
    ASSETS_MANAGE = "assets:manage"

    NOMINEES_READ = "nominees:read"
    NOMINEES_MANAGE = "nominees:manage"

    TRADING_READ = "trading:read"
    TRADING_MANAGE = "trading:manage"

    VAULT_READ = "vault:read"
    VAULT_SUBMIT = "vault:submit"
    VAULT_CONTENTS = "vault:contents"
    VAULT_REVIEW = "vault:review"

    DOCUMENTS_UPLOAD = "documents:upload"
    DOCUMENTS_READ_ALL = "documents:read_all"

    DASHBOARD_VIEW = "dashboard:view"

    USERS_READ = "users:read"
    USERS_MANAGE = "users:manage"
    AUDIT_READ = "audit:read"
    ADMINS_CREATE = "admins:create"


_ADMIN_CAPABILITIES: Set[str] = {
    Capability.VAULT_READ.value,
    Capability.VAULT_REVIEW.value,
    Capability.DOCUMENTS_UPLOAD.value,
    Capability.DOCUMENTS_READ_ALL.value,
    Capability.DASHBOARD_VIEW.value,
    Capability.USERS_READ.value,
    Capability.USERS_MANAGE.value,
    Capability.AUDIT_READ.value,
}

ROLE_CAPABILITIES: Dict[str, Set[str]] = {
    "owner": {
        Capability.ASSETS_READ.value,
        Capability.ASSETS_MANAGE.value,
        Capability.NOMINEES_READ.value,
        Capability.NOMINEES_MANAGE.value,
        Capability.TRADING_READ.value,
        Capability.TRADING_MANAGE.value,
        Capability.VAULT_READ.value,
        Capability.DOCUMENTS_UPLOAD.value,
        Capability.DASHBOARD_VIEW.value,
    },
    "nominee": {
        Capability.VAULT_READ.value,
        Capability.VAULT_SUBMIT.value,
        Capability.VAULT_CONTENTS.value,
        Capability.DOCUMENTS_UPLOAD.value,
        Capability.DASHBOARD_VIEW.value,
    },
    "admin": set(_ADMIN_CAPABILITIES),
    "super_admin": _ADMIN_CAPABILITIES | {Capability.ADMINS_CREATE.value},
}


def effective_capabilities(role: str) -> Set[str]:
    """Capabilities granted to a role. Unknown roles get nothing."""
    return set(ROLE_CAPABILITIES.get(role, set()))


def has_capability(role: str, capability: str) -> bool:
    if isinstance(capability, Capability):
        capability = capability.value
    return capability in ROLE_CAPABILITIES.get(role, set())
