"""
lifevault/dependencies.py

Reusable FastAPI dependencies for authorization and capability enforcement.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException

from lifevault.auth_context import require_auth_context, AuthContext
from lifevault.authz import Capability
from lifevault.config import IS_DEV


def require_capability(capability) -> Callable:
    """
    FastAPI dependency factory for capability authorization.

    Usage in routes:
        @router.post("", dependencies=[Depends(require_capability(Capability.ASSETS_MANAGE))])
        def create_asset(ctx: AuthContext = Depends(require_auth_context)):
            ...

    Raises:
        HTTPException(403): If the user's role lacks the capability
    """
    if isinstance(capability, Capability):
        capability = capability.value

    def _check_capability(ctx: AuthContext = Depends(require_auth_context)) -> AuthContext:
        if capability not in ctx.capabilities:
            if IS_DEV:
                print(f"[AUTHZ] Capability denied: capability={capability}, role={ctx.role}")
            raise HTTPException(
                status_code=403,
                detail="Insufficient permissions for this action",
            )
        return ctx

    return _check_capability

