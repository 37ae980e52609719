"""
Pending-Signup Cache Service.

Local durable key-value cache for signup forms whose profile row does not
exist yet.  Payloads are serialised ``PendingSignup`` models encrypted
with AES-256-GCM (see :class:`MachineBoundCipher`) and stored in the local
SQLite ``pending_signups`` table keyed by identity id.

SQLite work runs on a worker thread via ``asyncio.to_thread`` so every
cache access is a suspension point for the event loop.

Architecture Note
-----------------
This service accesses SQLite directly rather than through a Repository:
the pending payload is local infrastructure state, not domain data held
by the profile store.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from pydantic import ValidationError

from samvaad.database import DatabaseManager
from samvaad.errors import LocalCacheError
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import PendingSignup
from samvaad.services.base_service import BaseService
from samvaad.utils.machine_cipher import MachineBoundCipher


class PendingSignupCacheService(BaseService):
    """Encrypted ``get`` / ``set`` / ``delete`` over ``pending_signups``.

    A row that cannot be decrypted or validated is treated as absent and
    purged: a corrupted payload can never become a profile.
    """

    def __init__(
        self,
        db: DatabaseManager,
        cipher: MachineBoundCipher,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db: DatabaseManager = db
        self._cipher: MachineBoundCipher = cipher

    async def get(self, key: str) -> Optional[PendingSignup]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: PendingSignup) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    # ------------------------------------------------------------------
    # Worker-thread implementations
    # ------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[PendingSignup]:
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT encrypted_payload, nonce, tag FROM pending_signups "
                    "WHERE identity_id = ?",
                    (key,),
                ).fetchone()
        except Exception as exc:
            raise LocalCacheError(
                f"Failed to read pending signup {key}: {exc}", original_error=exc,
            ) from exc

        if row is None:
            return None

        try:
            plaintext = self._cipher.decrypt(
                row["encrypted_payload"], row["nonce"], row["tag"],
            )
            return PendingSignup(**json.loads(plaintext.decode("utf-8")))
        except (ValueError, KeyError, ValidationError) as exc:
            self._logger.warning(
                "Pending signup for %s is unreadable (corrupted data or "
                "machine identity changed); discarding: %s",
                key,
                exc,
            )
            self._delete_sync(key)
            return None

    def _set_sync(self, key: str, value: PendingSignup) -> None:
        plaintext = value.model_dump_json().encode("utf-8")
        try:
            ciphertext, nonce, tag = self._cipher.encrypt(plaintext)
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO pending_signups (identity_id, encrypted_payload, nonce, tag)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(identity_id) DO UPDATE SET
                        encrypted_payload = excluded.encrypted_payload,
                        nonce             = excluded.nonce,
                        tag               = excluded.tag
                    """,
                    (key, ciphertext, nonce, tag),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            raise LocalCacheError(
                f"Failed to store pending signup {key}: {exc}", original_error=exc,
            ) from exc
        self._logger.info("Pending signup cached for %s.", key)

    def _delete_sync(self, key: str) -> None:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    "DELETE FROM pending_signups WHERE identity_id = ?", (key,),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            raise LocalCacheError(
                f"Failed to delete pending signup {key}: {exc}", original_error=exc,
            ) from exc
