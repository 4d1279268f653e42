# ---------------------------------------------------------
# lifevault/main.py
# LifeVault - digital asset and nominee vault backend
#
# Run: uvicorn lifevault.main:app --reload (from repo root)
#
# - FastAPI + SQLite (dev) / PostgreSQL (DATABASE_URL)
# - /api/auth/*             : phone + OTP + PIN login, sessions
# - /api/assets             : owner asset records
# - /api/nominees           : nominees and allocation percentages
# - /api/trading-accounts   : trading / demat accounts
# - /api/vault/requests     : nominee claims, admin review, vault contents
# - /api/dashboard/*        : role-based statistics
# - /api/upload, /api/documents/* : files and document validation
# - /api/admin/*            : users, admins, audit logs
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lifevault.config import CORS_ORIGINS, IS_PROD
from lifevault.db import DB_KIND, check_connection
from lifevault.migrate import run_migrations
from lifevault.routes_admin import router as admin_router
from lifevault.routes_assets import router as assets_router
from lifevault.routes_auth import router as auth_router
from lifevault.routes_dashboard import router as dashboard_router
from lifevault.routes_documents import router as documents_router
from lifevault.routes_nominees import router as nominees_router
from lifevault.routes_trading_accounts import router as trading_accounts_router
from lifevault.routes_vault import router as vault_router
from lifevault.utils import now_iso

app = FastAPI(title="LifeVault Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

run_migrations()

app.include_router(auth_router)
app.include_router(assets_router)
app.include_router(nominees_router)
app.include_router(trading_accounts_router)
app.include_router(vault_router)
app.include_router(dashboard_router)
app.include_router(documents_router)
app.include_router(admin_router)


@app.get("/api/health")
def health() -> Dict[str, str]:
    if not check_connection():
        return {
            "status": "DEGRADED",
            "message": "Database unreachable",
            "database": DB_KIND,
            "timestamp": now_iso(),
        }
    return {
        "status": "OK",
        "message": "LifeVault API is running",
        "database": DB_KIND,
        "timestamp": now_iso(),
    }
