"""
lifevault/seed.py

Seed the super admin and, in dev, a demo owner with sample data.

The script is idempotent: users are looked up by phone before inserting,
and the demo owner's records are only created together with the owner.

Usage:
    python -m lifevault.seed
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from lifevault.auth_context import hash_pin
from lifevault.config import (
    IS_DEV,
    SUPER_ADMIN_EMAIL,
    SUPER_ADMIN_NAME,
    SUPER_ADMIN_PHONE,
    SUPER_ADMIN_PIN,
)
from lifevault.db import DBConnection, commit, execute, fetch_one, get_db_connection
from lifevault.migrate import run_migrations
from lifevault.models import UserRole
from lifevault.utils import new_id, normalize_phone, now_iso

DEMO_OWNER = {
    "name": "Rajesh Kumar",
    "phone": "+91 9876543210",
    "email": "rajesh.kumar@example.com",
    "address": "12 MG Road, Bengaluru",
    "pin": "1234",
}

DEMO_NOMINEE_USER = {
    "name": "Priya Kumar",
    "phone": "+91 9876543211",
    "email": "priya.kumar@example.com",
}

DEMO_ASSETS: List[Dict[str, Any]] = [
    {"category": "Bank", "institution": "State Bank of India", "account_number": "XXXX4521",
     "current_value": 250000.0, "notes": "Savings account"},
    {"category": "LIC", "institution": "Life Insurance Corporation", "account_number": "LIC-889102",
     "current_value": 500000.0, "maturity_date": "2035-03-31"},
    {"category": "PF", "institution": "EPFO", "account_number": "KA/BNG/0045123",
     "current_value": 320000.0},
    {"category": "Mutual Fund", "institution": "HDFC Mutual Fund", "account_number": "FOLIO-77120",
     "current_value": 180000.0},
]

DEMO_NOMINEES: List[Dict[str, Any]] = [
    {"name": DEMO_NOMINEE_USER["name"], "relation": "Spouse", "phone": DEMO_NOMINEE_USER["phone"],
     "email": DEMO_NOMINEE_USER["email"], "allocation_percentage": 60.0, "is_executor": 1},
    {"name": "Arjun Kumar", "relation": "Child", "phone": "+91 9876543212",
     "email": "arjun.kumar@example.com", "allocation_percentage": 40.0, "is_executor": 0},
]

DEMO_TRADING_ACCOUNTS: List[Dict[str, Any]] = [
    {"broker_name": "Zerodha", "account_number": "ZR1234", "demat_account_number": "1208160012345678",
     "current_value": 420000.0},
    {"broker_name": "ICICI Direct", "account_number": "ICD5678", "demat_account_number": "1204470098765432",
     "current_value": 150000.0},
]


def _find_user(conn: DBConnection, phone: str) -> Optional[dict]:
    return fetch_one(conn, "SELECT * FROM users WHERE phone = :phone", {"phone": phone})


def _insert_user(conn: DBConnection, name: str, phone: str, email: str, role: str,
                 pin: Optional[str], address: Optional[str] = None) -> str:
    now = now_iso()
    user_id = new_id()
    execute(
        conn,
        """
        INSERT INTO users (id, name, phone, email, address, pin_hash, role, is_active, created_at, updated_at)
        VALUES (:id, :name, :phone, :email, :address, :pin_hash, :role, 1, :now, :now)
        """,
        {
            "id": user_id,
            "name": name,
            "phone": phone,
            "email": email.lower(),
            "address": address,
            "pin_hash": hash_pin(pin) if pin else None,
            "role": role,
            "now": now,
        },
    )
    return user_id


def seed_super_admin(conn: DBConnection) -> Optional[str]:
    if not SUPER_ADMIN_PIN:
        print("[SEED] SUPER_ADMIN_PIN not set; skipping super admin")
        return None
    phone = normalize_phone(SUPER_ADMIN_PHONE)
    existing = _find_user(conn, phone)
    if existing:
        print(f"[SEED] Super admin already exists: user_id={existing['id']}")
        return existing["id"]
    user_id = _insert_user(conn, SUPER_ADMIN_NAME, phone, SUPER_ADMIN_EMAIL, UserRole.super_admin.value,
                           SUPER_ADMIN_PIN)
    print(f"[SEED] Super admin created: user_id={user_id}")
    return user_id


def seed_demo_data(conn: DBConnection) -> Optional[str]:
    """Demo owner with assets, nominees and trading accounts plus a linked nominee user."""
    phone = normalize_phone(DEMO_OWNER["phone"])
    existing = _find_user(conn, phone)
    if existing:
        print(f"[SEED] Demo owner already exists: user_id={existing['id']}")
        owner_id = existing["id"]
    else:
        owner_id = _insert_user(conn, DEMO_OWNER["name"], phone, DEMO_OWNER["email"], UserRole.owner.value,
                                DEMO_OWNER["pin"], DEMO_OWNER["address"])
        _seed_owner_records(conn, owner_id)
        print(f"[SEED] Demo owner created: user_id={owner_id}")

    nominee_phone = normalize_phone(DEMO_NOMINEE_USER["phone"])
    if not _find_user(conn, nominee_phone):
        nominee_user_id = _insert_user(conn, DEMO_NOMINEE_USER["name"], nominee_phone, DEMO_NOMINEE_USER["email"],
                                       UserRole.nominee.value, None)
        print(f"[SEED] Demo nominee user created: user_id={nominee_user_id}")
    return owner_id


def _seed_owner_records(conn: DBConnection, owner_id: str) -> None:
    now = now_iso()
    for asset in DEMO_ASSETS:
        execute(
            conn,
            """
            INSERT INTO assets (id, user_id, category, institution, account_number, current_value,
                                status, notes, documents, maturity_date, nominee, created_at, updated_at)
            VALUES (:id, :user_id, :category, :institution, :account_number, :current_value,
                    'Active', :notes, :documents, :maturity_date, NULL, :now, :now)
            """,
            {
                "notes": None,
                "maturity_date": None,
                **asset,
                "id": new_id(),
                "user_id": owner_id,
                "documents": json.dumps([]),
                "now": now,
            },
        )

    nominee_ids = []
    for nominee in DEMO_NOMINEES:
        nominee_id = new_id()
        nominee_ids.append(nominee_id)
        execute(
            conn,
            """
            INSERT INTO nominees (id, user_id, name, relation, phone, email, allocation_percentage,
                                  is_executor, is_backup, created_at, updated_at)
            VALUES (:id, :user_id, :name, :relation, :phone, :email, :allocation_percentage,
                    :is_executor, 0, :now, :now)
            """,
            {**nominee, "phone": normalize_phone(nominee["phone"]), "id": nominee_id,
             "user_id": owner_id, "now": now},
        )

    for account, nominee_id in zip(DEMO_TRADING_ACCOUNTS, nominee_ids):
        execute(
            conn,
            """
            INSERT INTO trading_accounts (id, user_id, broker_name, account_number, demat_account_number,
                                          nominee_id, current_value, status, documents, created_at, updated_at)
            VALUES (:id, :user_id, :broker_name, :account_number, :demat_account_number,
                    :nominee_id, :current_value, 'Active', '[]', :now, :now)
            """,
            {**account, "id": new_id(), "user_id": owner_id, "nominee_id": nominee_id, "now": now},
        )


def main() -> None:
    run_migrations()
    with get_db_connection() as conn:
        seed_super_admin(conn)
        if IS_DEV:
            seed_demo_data(conn)
        commit(conn)
    print("[SEED] Done")


if __name__ == "__main__":
    main()
