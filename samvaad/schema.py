"""
Local SQLite Schema Initialization.

Defines the schema of the local durable cache and provides a single
entry-point -- :func:`initialize_schema` -- that creates all required
tables idempotently.  A ``schema_version`` table records the applied
version so later releases can roll forward without data loss.

Tables:
    - ``pending_signups``: AES-GCM encrypted signup forms keyed by identity
      id, awaiting durable profile creation.
    - ``encrypted_sessions``: single-row encrypted refresh-token cache.

Usage::

    from samvaad.schema import initialize_schema

    initialize_schema(db.sqlite, StructuredLogger(name="samvaad.schema"))
"""

from __future__ import annotations

import sqlite3

from samvaad.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    # -- signup forms awaiting a profile row ----------------------------------
    """
    CREATE TABLE IF NOT EXISTS pending_signups (
        identity_id TEXT PRIMARY KEY,
        encrypted_payload BLOB NOT NULL,
        nonce BLOB NOT NULL,
        tag BLOB NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- single-row encrypted session token -----------------------------------
    """
    CREATE TABLE IF NOT EXISTS encrypted_sessions (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        encrypted_payload BLOB NOT NULL,
        nonce BLOB NOT NULL,
        tag BLOB NOT NULL
    )
    """,
]


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local database matches :data:`CURRENT_SCHEMA_VERSION`.

    Called on every startup; fully idempotent.  The upgrade runs inside a
    single transaction and is rolled back on failure so the next startup
    retries from the stored version.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Schema is up to date (version %d).", current)
        return

    try:
        for ddl in _TABLE_DEFINITIONS:
            conn.execute(ddl)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error("Schema initialisation failed; rolled back to version %d.", current)
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
