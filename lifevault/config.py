# lifevault/config.py
# Environment-aware configuration for the LifeVault backend

import os
from pathlib import Path as FsPath
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT and session configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "")
if not SECRET_KEY:
    if IS_PROD:
        raise RuntimeError("SECRET_KEY must be set in production")
    SECRET_KEY = "lifevault-dev-secret-key"
ALGORITHM = "HS256"

# Token lifetimes
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))
REFRESH_TOKEN_DAYS = int(os.environ.get("REFRESH_TOKEN_DAYS", "7"))
PIN_CHALLENGE_MINUTES = int(os.environ.get("PIN_CHALLENGE_MINUTES", "5"))

# OTP login
OTP_MINUTES = int(os.environ.get("OTP_MINUTES", "5"))
OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))
# Fixed code accepted in dev so the demo flow works without SMS delivery
DEMO_OTP = os.environ.get("DEMO_OTP", "123456") if IS_DEV else ""

# PIN hashing cost
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))

# Database configuration
# DATABASE_URL takes precedence (managed Postgres)
# Falls back to SQLite for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "lifevault.db")

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

# File storage
_PACKAGE_DIR = FsPath(__file__).resolve().parent
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", str(_PACKAGE_DIR / "uploads"))
MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "10"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
MAX_BATCH_FILES = int(os.environ.get("MAX_BATCH_FILES", "5"))

# Seeded super admin (see lifevault/seed.py)
SUPER_ADMIN_NAME = os.environ.get("SUPER_ADMIN_NAME", "Super Admin")
SUPER_ADMIN_PHONE = os.environ.get("SUPER_ADMIN_PHONE", "+919999999999")
SUPER_ADMIN_EMAIL = os.environ.get("SUPER_ADMIN_EMAIL", "admin@lifevault.local")
SUPER_ADMIN_PIN = os.environ.get("SUPER_ADMIN_PIN", "0000" if IS_DEV else "")

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:8501",  # Streamlit default
    "http://127.0.0.1:8501",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] Refresh token: {REFRESH_TOKEN_DAYS} days")
print(f"[CONFIG] OTP validity: {OTP_MINUTES} minutes")
print(f"[CONFIG] Upload limit: {MAX_UPLOAD_MB} MB")
