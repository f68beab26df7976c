"""SQLite database schema and initialization for Networking Hub.

This module defines the database schema with 4 tables:
- users: Google identities and their stored Gmail credentials
- emails: Fetched Gmail messages, one row per (user, message)
- contacts: Per-user counterpart addresses with batch aggregates
- follow_ups: Networking follow-up suggestions from the analysis pass

Usage:
    from networking_hub.db.models import init_database

    # Initialize database (creates tables and applies column migrations)
    await init_database("data/networking.db")
"""

import stat
from pathlib import Path

import aiosqlite

from networking_hub.core.errors import DatabaseError
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)

# Schema version for migrations (increment when schema changes)
SCHEMA_VERSION = 1

REQUIRED_TABLES = ["users", "emails", "contacts", "follow_ups"]

# SQL schema definition
SCHEMA_SQL = """
-- MUST be set before creating tables. Persists across connections.
PRAGMA journal_mode=WAL;

-- One row per Google identity
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    google_id TEXT UNIQUE NOT NULL,         -- Google account subject id
    email TEXT NOT NULL,
    name TEXT,
    picture TEXT,
    gmail_access_token TEXT,
    gmail_refresh_token TEXT,
    token_expires_at DATETIME,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);

-- Gmail messages, upserted on every fetch
CREATE TABLE IF NOT EXISTS emails (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    gmail_id TEXT NOT NULL,                 -- Gmail message id
    thread_id TEXT,
    subject TEXT,
    sender TEXT,                            -- Display name of the sender
    sender_email TEXT,
    recipient TEXT,                         -- Display name of the first recipient
    recipient_email TEXT,
    date_sent DATETIME,
    snippet TEXT,
    body TEXT,                              -- Truncated plain-text body
    labels TEXT,                            -- JSON list of Gmail label ids
    is_read INTEGER DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, gmail_id)
);

CREATE INDEX IF NOT EXISTS idx_emails_user_id ON emails(user_id);
CREATE INDEX IF NOT EXISTS idx_emails_date_sent ON emails(date_sent);
CREATE INDEX IF NOT EXISTS idx_emails_gmail_id ON emails(gmail_id);

-- Counterpart addresses seen in a user's mail
CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    contact_email TEXT NOT NULL,
    contact_name TEXT,
    first_email_date DATETIME,
    last_email_date DATETIME,
    email_count INTEGER DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(user_id, contact_email)
);

CREATE INDEX IF NOT EXISTS idx_contacts_user_id ON contacts(user_id);

-- Follow-up suggestions from networking analysis
CREATE TABLE IF NOT EXISTS follow_ups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    contact_email TEXT NOT NULL,
    contact_name TEXT,
    conversation_summary TEXT,
    networking_score INTEGER DEFAULT 0,     -- 0-10
    needs_followup INTEGER DEFAULT 0,
    followup_reason TEXT,
    suggested_action TEXT,
    priority TEXT DEFAULT 'medium',         -- 'high', 'medium', 'low'
    status TEXT DEFAULT 'pending',          -- 'pending', 'completed', 'dismissed'
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_follow_ups_user_id ON follow_ups(user_id);
"""

# Additive column migrations: (table, column, column definition).
# Databases created before these columns existed get them at startup.
COLUMN_MIGRATIONS: list[tuple[str, str, str]] = [
    ("emails", "user_email", "TEXT"),
    ("emails", "is_sent", "INTEGER DEFAULT 0"),
    ("users", "gmail_access_token", "TEXT"),
    ("users", "gmail_refresh_token", "TEXT"),
    ("users", "token_expires_at", "DATETIME"),
]


async def apply_column_migrations(db: aiosqlite.Connection) -> list[str]:
    """Add any missing columns listed in COLUMN_MIGRATIONS.

    Idempotent: columns already present (per PRAGMA table_info) are skipped.

    Args:
        db: Open connection (caller commits)

    Returns:
        List of "table.column" entries that were added
    """
    added: list[str] = []
    columns_by_table: dict[str, set[str]] = {}

    for table, column, definition in COLUMN_MIGRATIONS:
        if table not in columns_by_table:
            cursor = await db.execute(f"PRAGMA table_info({table})")
            columns_by_table[table] = {row[1] for row in await cursor.fetchall()}

        if column in columns_by_table[table]:
            continue

        await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        columns_by_table[table].add(column)
        added.append(f"{table}.{column}")

    return added


async def init_database(db_path: str | Path) -> None:
    """Initialize the SQLite database with schema and WAL mode.

    Creates the database file if it doesn't exist, enables WAL mode for
    concurrent access, creates all tables and indexes, and applies the
    additive column migrations.

    Args:
        db_path: Path to the SQLite database file

    Raises:
        DatabaseError: If database initialization fails
    """
    db_path = Path(db_path)

    # Ensure parent directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            journal_mode = await db.execute("PRAGMA journal_mode")
            mode = await journal_mode.fetchone()
            if mode and mode[0].lower() != "wal":
                logger.warning(
                    "WAL mode not enabled",
                    requested="wal",
                    actual=mode[0],
                    db_path=str(db_path),
                )

            await db.executescript(SCHEMA_SQL)
            added_columns = await apply_column_migrations(db)

            await db.commit()

            cursor = await db.execute("SELECT COUNT(*) FROM sqlite_master WHERE type='table'")
            table_count = (await cursor.fetchone())[0]

        # Tokens are stored in this file: owner read/write only
        db_path.chmod(stat.S_IRUSR | stat.S_IWUSR)

        for suffix in ["-wal", "-shm"]:
            wal_file = db_path.with_suffix(db_path.suffix + suffix)
            if wal_file.exists():
                wal_file.chmod(stat.S_IRUSR | stat.S_IWUSR)

        logger.info(
            "Database initialized",
            db_path=str(db_path),
            schema_version=SCHEMA_VERSION,
            tables_created=table_count,
            columns_added=added_columns,
        )

    except aiosqlite.Error as e:
        logger.error(
            "Database initialization failed",
            db_path=str(db_path),
            error=str(e),
        )
        raise DatabaseError(
            f"Failed to initialize database at {db_path}: {e}. "
            "Check that the directory is writable and the database file is not corrupted."
        ) from e


async def verify_schema(db_path: str | Path) -> bool:
    """Verify that the database has the expected schema.

    Checks that all required tables exist.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        True if all tables exist, False otherwise
    """
    try:
        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
            existing_tables = {row[0] for row in await cursor.fetchall()}

            missing = set(REQUIRED_TABLES) - existing_tables
            if missing:
                logger.warning(
                    "Missing database tables",
                    missing=sorted(missing),
                    db_path=str(db_path),
                )
                return False

            return True

    except aiosqlite.Error as e:
        logger.error(
            "Schema verification failed",
            db_path=str(db_path),
            error=str(e),
        )
        return False
