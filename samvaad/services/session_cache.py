"""
Encrypted Session Token Cache.

Encrypts and stores the Supabase refresh token locally in the SQLite
``encrypted_sessions`` table so that a session can be resumed (for
example right after a manual email confirmation) without asking for the
password again.

Security model
--------------
- Only the refresh token is cached.  No password or password hash is
  ever written to disk.
- Payloads are encrypted with AES-256-GCM by a :class:`MachineBoundCipher`.
- Cached tokens expire after a configurable number of days (default 7).
- Explicit sign-out deletes the cached row entirely.

Storage layout (single-row table, ``id = 1``)::

    encrypted_sessions
    ├── id               INTEGER PRIMARY KEY  (always 1)
    ├── encrypted_payload BLOB
    ├── nonce            BLOB
    └── tag              BLOB
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from samvaad.database import DatabaseManager
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import CachedSession
from samvaad.services.base_service import BaseService
from samvaad.utils.machine_cipher import MachineBoundCipher


class SessionTokenCache(BaseService):
    """Manages the encrypted refresh-token cache.

    Session caching is non-critical: every failure is logged and reported
    through the return value rather than raised.

    Architecture Note
    -----------------
    This service accesses SQLite directly rather than through a
    Repository, because the encrypted token is infrastructure state, not
    domain data.

    Parameters
    ----------
    db:
        An initialised ``DatabaseManager``.
    cipher:
        The machine-bound cipher shared with the pending-signup cache.
    logger:
        A ``StructuredLogger`` instance.
    max_age_days:
        Maximum number of days a cached token remains usable.
    """

    def __init__(
        self,
        db: DatabaseManager,
        cipher: MachineBoundCipher,
        logger: StructuredLogger,
        max_age_days: int = 7,
    ) -> None:
        super().__init__(logger)
        self._db: DatabaseManager = db
        self._cipher: MachineBoundCipher = cipher
        self._max_age_days: int = max_age_days

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def cache_session(self, user_id: str, email: str, refresh_token: str) -> bool:
        """Encrypt and persist the refresh token.

        Returns
        -------
        bool
            ``True`` if the token was encrypted and persisted.
        """
        return await asyncio.to_thread(self._cache_sync, user_id, email, refresh_token)

    async def load_cached_session(self) -> Optional[CachedSession]:
        """Load, decrypt and expiry-check the cached token.

        ``None`` is returned when no row exists, decryption fails
        (corrupted data or machine identity changed), or the token is
        older than ``max_age_days``.
        """
        return await asyncio.to_thread(self._load_sync)

    async def clear_session(self) -> None:
        """Delete the cached token.  Safe to call when nothing is cached."""
        await asyncio.to_thread(self._clear_sync)

    # ------------------------------------------------------------------
    # Worker-thread implementations
    # ------------------------------------------------------------------

    def _cache_sync(self, user_id: str, email: str, refresh_token: str) -> bool:
        payload = CachedSession(
            user_id=user_id,
            email=email,
            refresh_token=refresh_token,
            cached_at=datetime.now(tz=timezone.utc).isoformat(),
        )
        try:
            ciphertext, nonce, tag = self._cipher.encrypt(
                payload.model_dump_json().encode("utf-8"),
            )
        except Exception as exc:
            self._logger.warning("Failed to encrypt session payload: %s", exc)
            return False

        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO encrypted_sessions (id, encrypted_payload, nonce, tag)
                    VALUES (1, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        encrypted_payload = excluded.encrypted_payload,
                        nonce             = excluded.nonce,
                        tag               = excluded.tag
                    """,
                    (ciphertext, nonce, tag),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            self._logger.warning("Failed to write encrypted session: %s", exc)
            return False

        self._logger.info("Session token cached for %s.", email)
        return True

    def _load_sync(self) -> Optional[CachedSession]:
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT encrypted_payload, nonce, tag FROM encrypted_sessions WHERE id = 1",
                ).fetchone()
        except Exception as exc:
            self._logger.warning("Failed to read cached session: %s", exc)
            return None

        if row is None:
            self._logger.debug("No cached session found.")
            return None

        try:
            plaintext = self._cipher.decrypt(
                row["encrypted_payload"], row["nonce"], row["tag"],
            )
            session = CachedSession(**json.loads(plaintext.decode("utf-8")))
        except (ValueError, KeyError, ValidationError) as exc:
            self._logger.warning(
                "Cached session is unreadable (corrupted data or machine "
                "identity changed): %s",
                exc,
            )
            return None

        try:
            cached_at = datetime.fromisoformat(session.cached_at)
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Could not parse cached_at timestamp '%s': %s", session.cached_at, exc,
            )
            return None

        if datetime.now(tz=timezone.utc) > cached_at + timedelta(days=self._max_age_days):
            self._logger.info(
                "Cached session for %s has expired (cached at %s, max age %d days).",
                session.email,
                session.cached_at,
                self._max_age_days,
            )
            return None

        return session

    def _clear_sync(self) -> None:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute("DELETE FROM encrypted_sessions WHERE id = 1")
                self._db.sqlite.commit()
            self._logger.info("Cached session cleared.")
        except Exception as exc:
            self._logger.error("Failed to clear cached session: %s", exc)
