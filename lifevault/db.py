# lifevault/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev)
#
# All queries use named ":param" placeholders, which both sqlite3 and
# SQLAlchemy's text() accept unchanged.

import sqlite3
from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, List, Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, text, pool
from sqlalchemy.engine import Engine, Connection
from sqlalchemy.exc import SQLAlchemyError, IntegrityError as SAIntegrityError

from lifevault.config import DATABASE_URL, DATABASE_PATH, IS_POSTGRES, IS_DEV

DBConnection = Union[sqlite3.Connection, Connection]

# Errors route handlers map to HTTP 500
DB_ERRORS = (sqlite3.Error, SQLAlchemyError)
# Unique/foreign key violations (subset of DB_ERRORS)
INTEGRITY_ERRORS = (sqlite3.IntegrityError, SAIntegrityError)

DB_KIND = "postgresql" if IS_POSTGRES else "sqlite"

# Global engine (SQLAlchemy) or None for SQLite
_engine: Optional[Engine] = None


def init_engine() -> None:
    """Initialize SQLAlchemy engine for PostgreSQL if DATABASE_URL is set."""
    global _engine

    if not IS_POSTGRES:
        _engine = None
        print("[DB] Using SQLite (local dev mode)")
        return

    parsed = urlparse(DATABASE_URL)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid DATABASE_URL: {DATABASE_URL[:20]}...")

    url = DATABASE_URL
    # SQLAlchemy no longer accepts the legacy "postgres://" scheme
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    _engine = create_engine(
        url,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
    )

    print(f"[DB] Using PostgreSQL ({parsed.hostname})")


def sqlite_path() -> str:
    """Resolve DATABASE_PATH; relative paths live beside this package."""
    path = FsPath(DATABASE_PATH)
    if not path.is_absolute():
        path = FsPath(__file__).resolve().parent / path
    return str(path)


def get_db() -> DBConnection:
    """
    Open a new connection. Caller is responsible for close().

    Route handlers use this together with try/finally, the same way
    get_db_connection() does for scripts.
    """
    if IS_POSTGRES:
        if _engine is None:
            init_engine()
        return _engine.connect()

    conn = sqlite3.connect(sqlite_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_db_connection() -> Generator[DBConnection, None, None]:
    """
    Context manager for database connections.
    Returns sqlite3.Connection for SQLite or sqlalchemy.Connection for Postgres.
    """
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


def execute_query(
    conn: DBConnection,
    query: str,
    params: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Execute a query with named parameters.

    Returns:
        Cursor (SQLite) or CursorResult (PostgreSQL)
    """
    if IS_POSTGRES:
        return conn.execute(text(query), params or {})
    return conn.execute(query, params or {})


def _row_to_dict(row: Any) -> Dict[str, Any]:
    if row is None:
        return {}
    return dict(row)


def fetch_one(conn: DBConnection, query: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Return the first row as a dict, or None."""
    result = execute_query(conn, query, params)
    if IS_POSTGRES:
        row = result.mappings().first()
    else:
        row = result.fetchone()
    if row is None:
        return None
    return _row_to_dict(row)


def fetch_all(conn: DBConnection, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Return all rows as a list of dicts."""
    result = execute_query(conn, query, params)
    if IS_POSTGRES:
        rows = result.mappings().all()
    else:
        rows = result.fetchall()
    return [_row_to_dict(r) for r in rows]


def fetch_value(conn: DBConnection, query: str, params: Optional[Dict[str, Any]] = None, default: Any = 0) -> Any:
    """Return the first column of the first row (COUNT/SUM helpers)."""
    result = execute_query(conn, query, params)
    row = result.fetchone()
    if row is None or row[0] is None:
        return default
    return row[0]


def execute(conn: DBConnection, query: str, params: Optional[Dict[str, Any]] = None) -> int:
    """Execute a write statement and return the affected row count."""
    result = execute_query(conn, query, params)
    return result.rowcount


def lock_for_update(conn: DBConnection, table: str, row_id: str) -> None:
    """
    Serialize writers on one parent row until commit() or rollback().

    PostgreSQL locks the row with SELECT ... FOR UPDATE. SQLite has no row
    locks, so the database write lock is taken up front with BEGIN IMMEDIATE.
    Call it before reading the rows the write depends on.
    """
    if IS_POSTGRES:
        execute_query(conn, f"SELECT id FROM {table} WHERE id = :id FOR UPDATE", {"id": row_id})
    elif not conn.in_transaction:
        # An open transaction has already written, so it holds the write lock
        conn.execute("BEGIN IMMEDIATE")


def commit(conn: DBConnection) -> None:
    conn.commit()


def rollback(conn: DBConnection) -> None:
    conn.rollback()


def check_connection() -> bool:
    """Liveness check used by /api/health."""
    try:
        with get_db_connection() as conn:
            execute_query(conn, "SELECT 1")
        return True
    except DB_ERRORS as e:
        print(f"[DB] Health check failed: {e}")
        return False


# Initialize engine on module import if Postgres mode
if IS_POSTGRES and _engine is None:
    init_engine()
elif IS_DEV:
    print(f"[DB] SQLite path: {sqlite_path()}")
