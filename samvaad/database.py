"""
Database Abstraction Layer.

Owns the three connections the account engine needs:

- **Supabase (anon key)**: identity provider and ``users`` profile table
  for the signed-in user.
- **Supabase (service-role key)**: admin client used for identity lookup
  by id and for deleting the identities of expired, unconfirmed accounts.
  Optional; without it the expiry reaper can only remove profile rows.
- **SQLite (local)**: the local durable cache holding pending-signup
  payloads and the encrypted session token.

Data access is performed through repositories and cache services.  This
module only manages the raw *connections*; it contains no query logic.

Usage (dependency injection at startup)::

    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=config.LOCAL_CACHE_PATH,
        logger=StructuredLogger(name="samvaad.database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, acreate_client

from samvaad.errors import OfflineError
from samvaad.logger import StructuredLogger


class DatabaseManager:
    """Manages the Supabase clients and the local SQLite connection.

    Build instances with :meth:`connect`; the Supabase async client can
    only be created inside a running event loop.

    When ``supabase_url`` or ``supabase_key`` is empty the Supabase client
    is **not** created and the ``supabase`` property raises
    :class:`OfflineError`, which every repository surfaces as a store
    failure.
    """

    def __init__(
        self,
        sqlite_conn: sqlite3.Connection,
        logger: StructuredLogger,
        supabase: Optional[AsyncClient] = None,
        supabase_admin: Optional[AsyncClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._supabase: Optional[AsyncClient] = supabase
        self._supabase_admin: Optional[AsyncClient] = supabase_admin
        self._sqlite_conn: Optional[sqlite3.Connection] = sqlite_conn

    @classmethod
    async def connect(
        cls,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
        service_role_key: str = "",
    ) -> "DatabaseManager":
        """Create the Supabase clients (when configured) and open SQLite."""
        supabase: Optional[AsyncClient] = None
        supabase_admin: Optional[AsyncClient] = None

        if supabase_url and supabase_key:
            try:
                supabase = await acreate_client(supabase_url, supabase_key)
                logger.info("Supabase client initialized.")
                if service_role_key:
                    supabase_admin = await acreate_client(supabase_url, service_role_key)
                    logger.info("Supabase admin client initialized.")
            except (ValueError, TypeError) as exc:
                logger.warning(
                    "Supabase credential format error: %s. Running offline.", exc,
                )
            except Exception as exc:
                logger.error(
                    "Unexpected Supabase initialization failure: %s. Running offline.",
                    exc,
                    exc_info=True,
                )
        else:
            logger.warning("Supabase credentials not configured; running offline.")

        conn = cls._connect_sqlite(sqlite_path, logger)
        return cls(
            sqlite_conn=conn,
            logger=logger,
            supabase=supabase,
            supabase_admin=supabase_admin,
        )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> AsyncClient:
        """Return the anon-key Supabase client.

        Raises
        ------
        OfflineError
            If the client was not initialised.
        """
        if self._supabase is None:
            raise OfflineError(
                "Supabase client is not initialised. The engine is running offline."
            )
        return self._supabase

    @property
    def supabase_admin(self) -> AsyncClient:
        """Return the service-role Supabase client.

        Raises
        ------
        OfflineError
            If no service-role key was configured.
        """
        if self._supabase_admin is None:
            raise OfflineError(
                "Supabase admin client is not initialised "
                "(SUPABASE_SERVICE_ROLE_KEY missing)."
            )
        return self._supabase_admin

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the SQLite connection."""
        if self._sqlite_conn is None:
            raise RuntimeError("SQLite connection is closed.")
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Lock serialising SQLite access from worker threads.

        Local cache I/O runs via ``asyncio.to_thread``; every statement
        plus its ``commit()`` is executed under this lock::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._sqlite_conn is not None:
                try:
                    self._sqlite_conn.close()
                    self._logger.info("SQLite connection closed.")
                except sqlite3.ProgrammingError:
                    pass
                self._sqlite_conn = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _connect_sqlite(path: Path, logger: StructuredLogger) -> sqlite3.Connection:
        """Open (or create) the SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local cache at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            logger.error(msg)
            raise PermissionError(msg) from exc
