"""Database connection factory for SQLite (local) and PostgreSQL (cloud)."""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from taxmatch.config import DATA_DIR, DATABASE_URL, DB_PATH

# Errors raised by either database driver
DB_ERRORS = (sqlite3.Error, psycopg2.Error)


class DatabaseConnection:
    """Wrapper for database connections that provides a consistent interface."""

    def __init__(self, conn: Any, is_postgres: bool = False):
        self.conn = conn
        self.is_postgres = is_postgres
        self._cursor = None

    def cursor(self, dictionary: bool = False) -> Any:
        """Get a cursor for executing database operations.

        Args:
            dictionary: If True, rows are returned as dict-like objects so
                columns can be accessed by name. PostgreSQL uses RealDictCursor;
                SQLite connections already use the Row factory.

        Returns:
            Database cursor object for executing queries and fetching results.
        """
        if self.is_postgres:
            self._cursor = self.conn.cursor(cursor_factory=RealDictCursor if dictionary else None)
        else:
            self._cursor = self.conn.cursor()
        return self._cursor

    def begin(self, lock_key: str | None = None) -> None:
        """Start a write transaction.

        SQLite takes the database write lock immediately. PostgreSQL opens the
        transaction implicitly and, when lock_key is given, takes a
        transaction-scoped advisory lock so writers for the same key serialize.
        """
        if self.is_postgres:
            if lock_key is not None:
                cursor = self.conn.cursor()
                cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (lock_key,))
                cursor.close()
        else:
            self.conn.execute("BEGIN IMMEDIATE")

    @contextmanager
    def transaction(self, lock_key: str | None = None) -> Generator["DatabaseConnection", None, None]:
        """Run a block in one write transaction, rolling back on any error."""
        self.begin(lock_key)
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def commit(self) -> None:
        """Commit the transaction."""
        self.conn.commit()

    def rollback(self) -> None:
        """Roll back the current transaction."""
        self.conn.rollback()

    def close(self) -> None:
        """Close the connection."""
        if self._cursor:
            self._cursor.close()
        self.conn.close()

    @property
    def placeholder(self) -> str:
        """Return the parameter placeholder for this database."""
        return "%s" if self.is_postgres else "?"


@contextmanager
def get_connection() -> Generator[DatabaseConnection, None, None]:
    """Get a database connection.

    Uses PostgreSQL if DATABASE_URL is set, otherwise falls back to SQLite.

    Yields:
        DatabaseConnection wrapper with consistent interface.
    """
    if DATABASE_URL:
        conn = psycopg2.connect(DATABASE_URL)
        db = DatabaseConnection(conn, is_postgres=True)
    else:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(DB_PATH, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.row_factory = sqlite3.Row
        db = DatabaseConnection(conn, is_postgres=False)

    try:
        yield db
    finally:
        db.close()


def database_exists() -> bool:
    """Check whether the configured database is reachable without creating it."""
    return bool(DATABASE_URL) or DB_PATH.exists()


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_db_timestamp(db: DatabaseConnection, value: datetime) -> Any:
    """Convert a datetime into the parameter form each database expects.

    Naive datetimes are treated as UTC. SQLite stores ISO-8601 text, which
    sorts chronologically as long as every value carries the same offset.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value if db.is_postgres else value.isoformat()


def from_db_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp column from either database into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def init_tables() -> None:
    """Initialize database tables.

    Creates all required tables if they don't exist.
    Uses appropriate syntax for PostgreSQL or SQLite.
    """
    with get_connection() as db:
        if db.is_postgres:
            _init_postgres_tables(db)
        else:
            _init_sqlite_tables(db)
        db.commit()


def _init_postgres_tables(db: DatabaseConnection) -> None:
    """Create PostgreSQL tables."""
    cursor = db.cursor()

    # Providers (tax accountants) and their enrichment tables
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS providers (
            id TEXT PRIMARY KEY,
            display_name TEXT,
            prefecture TEXT,
            city TEXT,
            years_of_experience INTEGER NOT NULL DEFAULT 0,
            average_rating NUMERIC(3, 2),
            total_reviews INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            is_accepting_clients BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS provider_specialties (
            provider_id TEXT NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            years_of_experience INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (provider_id, position)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS pricing_tiers (
            provider_id TEXT NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
            display_order INTEGER NOT NULL,
            name TEXT,
            base_price INTEGER NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            PRIMARY KEY (provider_id, display_order)
        )
    """)

    # Diagnoses: the source of every match snapshot
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS diagnoses (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            answers JSONB NOT NULL,
            has_criteria BOOLEAN NOT NULL DEFAULT FALSE,
            business_type TEXT,
            budget INTEGER,
            needs JSONB,
            frequency TEXT,
            location TEXT,
            revenue BIGINT,
            employee_count INTEGER,
            created_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ
        )
    """)

    # Match snapshot: one row per ranked decision, one row per reason
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_results (
            source_id TEXT NOT NULL REFERENCES diagnoses(id) ON DELETE CASCADE,
            rank INTEGER NOT NULL,
            run_id TEXT NOT NULL,
            provider_id TEXT NOT NULL,
            composite_score NUMERIC(5, 2) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (source_id, rank)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_reasons (
            source_id TEXT NOT NULL,
            rank INTEGER NOT NULL,
            position INTEGER NOT NULL,
            factor_type TEXT NOT NULL,
            score REAL NOT NULL,
            description TEXT NOT NULL,
            PRIMARY KEY (source_id, rank, position)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_diagnoses_user_id
        ON diagnoses(user_id, created_at)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_match_results_created_at
        ON match_results(created_at)
    """)


def _init_sqlite_tables(db: DatabaseConnection) -> None:
    """Create SQLite tables (for local development/testing)."""
    cursor = db.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS providers (
            id TEXT PRIMARY KEY,
            display_name TEXT,
            prefecture TEXT,
            city TEXT,
            years_of_experience INTEGER NOT NULL DEFAULT 0,
            average_rating REAL,
            total_reviews INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            is_accepting_clients INTEGER NOT NULL DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS provider_specialties (
            provider_id TEXT NOT NULL REFERENCES providers(id),
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            years_of_experience INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (provider_id, position)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS pricing_tiers (
            provider_id TEXT NOT NULL REFERENCES providers(id),
            display_order INTEGER NOT NULL,
            name TEXT,
            base_price INTEGER NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (provider_id, display_order)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS diagnoses (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            answers TEXT NOT NULL,
            has_criteria INTEGER NOT NULL DEFAULT 0,
            business_type TEXT,
            budget INTEGER,
            needs TEXT,
            frequency TEXT,
            location TEXT,
            revenue INTEGER,
            employee_count INTEGER,
            created_at TEXT NOT NULL,
            completed_at TEXT
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_results (
            source_id TEXT NOT NULL REFERENCES diagnoses(id),
            rank INTEGER NOT NULL,
            run_id TEXT NOT NULL,
            provider_id TEXT NOT NULL,
            composite_score REAL NOT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (source_id, rank)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS match_reasons (
            source_id TEXT NOT NULL,
            rank INTEGER NOT NULL,
            position INTEGER NOT NULL,
            factor_type TEXT NOT NULL,
            score REAL NOT NULL,
            description TEXT NOT NULL,
            PRIMARY KEY (source_id, rank, position)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_diagnoses_user_id
        ON diagnoses(user_id, created_at)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_match_results_created_at
        ON match_results(created_at)
    """)
