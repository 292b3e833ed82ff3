"""
Centralized SQLite Schema Initialization.

Defines the canonical schema for the FamilySafe document database and
provides a single entry-point -- :func:`initialize_schema` -- that creates
all required tables idempotently.  A ``schema_version`` table records the
applied version so that later schema changes can be rolled forward.

Every collection table has the same shape::

    id       TEXT PRIMARY KEY   -- document key
    data     TEXT NOT NULL      -- JSON document body (camelCase keys)
    version  INTEGER NOT NULL   -- optimistic-concurrency counter

Filtered queries go through ``json_extract(data, '$.field')``; the
expression indexes below cover the filters the services use.

Usage::

    from familysafe.logger import StructuredLogger
    from familysafe.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3

from familysafe.logger import StructuredLogger

__all__ = ["COLLECTION_TABLES", "CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

COLLECTION_TABLES: tuple[str, ...] = (
    "profiles",
    "families",
    "invites",
    "approval_requests",
)


def _collection_ddl(table: str) -> str:
    return f"""
    CREATE TABLE IF NOT EXISTS {table} (
        id TEXT PRIMARY KEY,
        data TEXT NOT NULL CHECK (json_valid(data)),
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """


_TABLE_DEFINITIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    *(_collection_ddl(table) for table in COLLECTION_TABLES),
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- expression indexes for the service-layer filters ----------------------
    "CREATE INDEX IF NOT EXISTS idx_profiles_email ON profiles(json_extract(data, '$.email'))",
    "CREATE INDEX IF NOT EXISTS idx_profiles_role ON profiles(json_extract(data, '$.role'))",
    "CREATE INDEX IF NOT EXISTS idx_profiles_family ON profiles(json_extract(data, '$.familyId'))",
    "CREATE INDEX IF NOT EXISTS idx_profiles_parent ON profiles(json_extract(data, '$.parentUid'))",
    "CREATE INDEX IF NOT EXISTS idx_families_parent ON families(json_extract(data, '$.parentUid'))",
    "CREATE INDEX IF NOT EXISTS idx_invites_code ON invites(json_extract(data, '$.code'))",
    "CREATE INDEX IF NOT EXISTS idx_approval_requests_status ON approval_requests(json_extract(data, '$.status'))",
]


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row is not None else 0


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the SQLite database matches :data:`CURRENT_SCHEMA_VERSION`.

    Table creation and the version bump run in one transaction; on failure
    the database is rolled back and the next startup retries.  Safe to call
    on every startup.

    Args:
        conn: An open SQLite connection in autocommit mode.
        logger: Structured logger for progress output.
    """
    conn.execute(_TABLE_DEFINITIONS[0])
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    logger.info(
        "Upgrading schema from version %d to %d...", current, CURRENT_SCHEMA_VERSION
    )

    conn.execute("BEGIN IMMEDIATE")
    try:
        for ddl in _TABLE_DEFINITIONS[1:]:
            conn.execute(ddl)
        conn.execute(
            """
            INSERT INTO schema_version (id, version) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                          applied_at = CURRENT_TIMESTAMP
            """,
            (CURRENT_SCHEMA_VERSION,),
        )
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        logger.error("Schema initialisation failed: rolled back to version %d.", current)
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
