"""
Shared pytest fixtures.

The test database and upload directory are created BEFORE lifevault is
imported; config.py reads DATABASE_PATH and UPLOAD_DIR at import time.
"""

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="lifevault-test-")
os.environ["ENV"] = "dev"
os.environ["DATABASE_PATH"] = os.path.join(_TEST_DIR, "test.db")
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_DIR, "uploads")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)

import pytest
from fastapi.testclient import TestClient

from lifevault.auth_context import create_access_token, hash_pin
from lifevault.db import commit, execute, get_db_connection
from lifevault.main import app
from lifevault.migrate import run_migrations
from lifevault.utils import new_id, now_iso

# Child tables first
_TABLES = (
    "audit_logs",
    "vault_requests",
    "document_validations",
    "trading_accounts",
    "nominees",
    "assets",
    "otp_codes",
    "auth_sessions",
    "users",
)


@pytest.fixture(autouse=True)
def clean_db():
    run_migrations()
    with get_db_connection() as conn:
        for table in _TABLES:
            execute(conn, f"DELETE FROM {table}")
        commit(conn)
    yield


@pytest.fixture
def client():
    return TestClient(app)


def _insert_user(name, phone, email, role="owner", pin="1234", is_active=True):
    now = now_iso()
    user = {
        "id": new_id(),
        "name": name,
        "phone": phone,
        "email": email,
        "address": None,
        "pin_hash": hash_pin(pin) if pin else None,
        "role": role,
        "is_active": int(is_active),
        "created_at": now,
        "updated_at": now,
    }
    with get_db_connection() as conn:
        execute(
            conn,
            """
            INSERT INTO users (id, name, phone, email, address, pin_hash, role, is_active, created_at, updated_at)
            VALUES (:id, :name, :phone, :email, :address, :pin_hash, :role, :is_active, :created_at, :updated_at)
            """,
            user,
        )
        commit(conn)
    return user


@pytest.fixture
def make_user():
    """Factory: insert a user and return it with a bearer header."""
    counter = {"n": 0}

    def _make(role="owner", name=None, phone=None, email=None, pin="1234", is_active=True):
        counter["n"] += 1
        n = counter["n"]
        user = _insert_user(
            name or f"Test {role.title()} {n}",
            phone or f"+91900000{n:04d}",
            email or f"{role}{n}@test.com",
            role=role,
            pin=pin,
            is_active=is_active,
        )
        token = create_access_token(user["id"], role)
        user["token"] = token
        user["headers"] = {"Authorization": f"Bearer {token}"}
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner", name="Owner One", phone="+919876500001", email="owner1@test.com")


@pytest.fixture
def other_owner(make_user):
    return make_user("owner", name="Owner Two", phone="+919876500002", email="owner2@test.com")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Admin One", phone="+919876500009", email="admin1@test.com")


@pytest.fixture
def super_admin(make_user):
    return make_user("super_admin", name="Root Admin", phone="+919876500010", email="root@test.com")
