# lifevault/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m lifevault.migrate

from lifevault.db import IS_POSTGRES, get_db_connection, execute_query, fetch_all, commit

# Column types are chosen to be valid on both engines: ids are UUID strings,
# timestamps are ISO-8601 text, booleans are 0/1 integers.
TABLES = [
    ("users", """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            phone TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            address TEXT,
            pin_hash TEXT,
            role TEXT NOT NULL DEFAULT 'owner',
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """),
    ("auth_sessions", """
        CREATE TABLE IF NOT EXISTS auth_sessions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            refresh_token_hash TEXT NOT NULL,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            last_used_at TEXT,
            revoked_at TEXT
        )
    """),
    ("otp_codes", """
        CREATE TABLE IF NOT EXISTS otp_codes (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            code_hash TEXT NOT NULL,
            attempts INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            consumed_at TEXT
        )
    """),
    ("assets", """
        CREATE TABLE IF NOT EXISTS assets (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            category TEXT NOT NULL,
            institution TEXT NOT NULL,
            account_number TEXT NOT NULL,
            current_value DOUBLE PRECISION NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'Active',
            notes TEXT,
            documents TEXT NOT NULL DEFAULT '[]',
            maturity_date TEXT,
            nominee TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """),
    ("nominees", """
        CREATE TABLE IF NOT EXISTS nominees (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            relation TEXT NOT NULL,
            phone TEXT NOT NULL,
            email TEXT NOT NULL,
            allocation_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
            is_executor INTEGER NOT NULL DEFAULT 0,
            is_backup INTEGER NOT NULL DEFAULT 0,
            address TEXT,
            id_proof_type TEXT,
            id_proof_number TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """),
    ("trading_accounts", """
        CREATE TABLE IF NOT EXISTS trading_accounts (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            broker_name TEXT NOT NULL,
            account_number TEXT NOT NULL,
            demat_account_number TEXT,
            nominee_id TEXT REFERENCES nominees(id) ON DELETE SET NULL,
            current_value DOUBLE PRECISION NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'Active',
            notes TEXT,
            documents TEXT NOT NULL DEFAULT '[]',
            opened_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """),
    ("document_validations", """
        CREATE TABLE IF NOT EXISTS document_validations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            file_name TEXT NOT NULL,
            file_size INTEGER NOT NULL,
            file_type TEXT,
            file_hash TEXT NOT NULL,
            document_type TEXT,
            confidence_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            fraud_risk_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            is_duplicate INTEGER NOT NULL DEFAULT 0,
            validation_status TEXT NOT NULL,
            extracted_text TEXT,
            validation_details TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL
        )
    """),
    ("vault_requests", """
        CREATE TABLE IF NOT EXISTS vault_requests (
            id TEXT PRIMARY KEY,
            nominee_id TEXT NOT NULL REFERENCES nominees(id) ON DELETE CASCADE,
            owner_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            submitted_by TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            nominee_name TEXT NOT NULL,
            relation_to_deceased TEXT NOT NULL,
            phone_number TEXT NOT NULL,
            email TEXT NOT NULL,
            death_certificate_url TEXT,
            document_validation_id TEXT REFERENCES document_validations(id) ON DELETE SET NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            admin_notes TEXT,
            reviewed_at TEXT,
            reviewed_by TEXT REFERENCES users(id) ON DELETE SET NULL,
            vault_opened_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """),
    ("audit_logs", """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id TEXT PRIMARY KEY,
            action TEXT NOT NULL,
            resource TEXT NOT NULL,
            resource_id TEXT,
            user_id TEXT,
            description TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            ip_address TEXT,
            user_agent TEXT,
            created_at TEXT NOT NULL
        )
    """),
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_auth_sessions_user ON auth_sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_otp_codes_user ON otp_codes(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_assets_user ON assets(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_nominees_user ON nominees(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_nominees_phone ON nominees(phone)",
    "CREATE INDEX IF NOT EXISTS idx_nominees_email ON nominees(email)",
    "CREATE INDEX IF NOT EXISTS idx_trading_accounts_user ON trading_accounts(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_document_validations_user ON document_validations(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_document_validations_hash ON document_validations(file_hash)",
    "CREATE INDEX IF NOT EXISTS idx_vault_requests_owner ON vault_requests(owner_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_vault_requests_nominee ON vault_requests(nominee_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_vault_requests_submitter ON vault_requests(submitted_by)",
    # One open claim per nominee record
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_vault_requests_active ON vault_requests(nominee_id) "
    "WHERE status IN ('pending', 'under_review')",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_user ON audit_logs(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_created ON audit_logs(created_at)",
]

# Columns added after the first release; SQLite dev databases get them in place.
# (table, column, DDL fragment)
ADDED_COLUMNS = [
    ("users", "last_login_at", "TEXT"),
    ("auth_sessions", "last_used_at", "TEXT"),
    ("vault_requests", "document_validation_id", "TEXT"),
]


def run_migrations() -> None:
    """
    Run all database migrations (idempotent).
    Creates tables, adds columns, and creates indexes if missing.
    Safe to run multiple times.
    """
    print("[MIGRATE] Starting database migrations...")

    with get_db_connection() as conn:
        if IS_POSTGRES:
            _run_postgres_migrations(conn)
        else:
            _run_sqlite_migrations(conn)

        commit(conn)

    print("[MIGRATE] All migrations complete!")


def _create_tables(conn) -> None:
    for name, ddl in TABLES:
        execute_query(conn, ddl)
        print(f"[MIGRATE] Table ready: {name}")
    for ddl in INDEXES:
        execute_query(conn, ddl)


def _run_postgres_migrations(conn) -> None:
    print("[MIGRATE] Running PostgreSQL migrations...")
    _create_tables(conn)
    for table, column, ddl in ADDED_COLUMNS:
        execute_query(conn, f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {ddl}")


def _run_sqlite_migrations(conn) -> None:
    print("[MIGRATE] Running SQLite migrations...")
    _create_tables(conn)
    for table, column, ddl in ADDED_COLUMNS:
        _ensure_sqlite_column(conn, table, column, ddl)


def _ensure_sqlite_column(conn, table: str, column: str, ddl: str) -> None:
    """Add a column to an existing SQLite table if it is missing."""
    columns = {row["name"] for row in fetch_all(conn, f"PRAGMA table_info({table})")}
    if column not in columns:
        execute_query(conn, f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
        print(f"[MIGRATE] Added column {table}.{column}")


if __name__ == "__main__":
    run_migrations()
