"""
Machine-Bound AES-256-GCM Cipher.

Encrypts local cache payloads (pending signup forms, the refresh token)
with a key derived at runtime from machine characteristics
(hostname + OS username) via PBKDF2-HMAC-SHA256 and a per-machine random
salt.  The key is **never** persisted to disk.

Threat model: protects cached payloads against casual disk access (a
copied database file is useless on another machine).  It does not resist
an attacker who controls the same OS account.
"""

from __future__ import annotations

import getpass
import os
import platform
import socket
import stat
import threading
from pathlib import Path
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from samvaad.logger import StructuredLogger

__all__ = ["MachineBoundCipher"]


class MachineBoundCipher:
    """AES-256-GCM encryption with a lazily derived, machine-bound key.

    Parameters
    ----------
    logger:
        Structured logger.
    salt_path:
        Location of the per-machine salt file.  Defaults to
        ``~/.samvaad_cache_salt``.
    iterations:
        PBKDF2 iteration count.
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        logger: StructuredLogger,
        salt_path: Optional[Path] = None,
        iterations: int = 600_000,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._salt_path: Path = salt_path or Path.home() / ".samvaad_cache_salt"
        self._iterations: int = iterations
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    def encrypt(self, plaintext: bytes) -> tuple[bytes, bytes, bytes]:
        """Return ``(ciphertext, nonce, tag)``."""
        cipher = AES.new(self._derive_key(), AES.MODE_GCM)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return ciphertext, cipher.nonce, tag

    def decrypt(self, ciphertext: bytes, nonce: bytes, tag: bytes) -> bytes:
        """Decrypt and verify.

        Raises
        ------
        ValueError
            If the data was tampered with or the machine identity changed.
        """
        cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=nonce)
        return cipher.decrypt_and_verify(ciphertext, tag)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _derive_key(self) -> bytes:
        """Derive (once) the 256-bit key from machine identity.

        Raises
        ------
        OSError
            If the per-machine salt file cannot be created or read.
        """
        with self._key_lock:
            if self._key is None:
                password: str = f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-machine random salt, creating it on first run."""
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == self._SALT_LENGTH:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.", len(data),
            )
        salt: bytes = os.urandom(self._SALT_LENGTH)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)

        if platform.system() != "Windows":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        self._logger.info("Per-machine cache salt created at %s.", self._salt_path)
        return salt
