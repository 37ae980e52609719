"""
Application Configuration.

Pydantic Settings model for the Samvaad account lifecycle engine.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import SecretStr, model_validator


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    # Required for identity lookup by id and identity deletion (expiry reaper).
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    PROFILES_TABLE: str = "users"
    PARENT_CHILD_TABLE: str = "parent_child_relationships"

    # --- Local durable cache (pending signups, encrypted session token) ---
    LOCAL_CACHE_PATH: Path = Path("samvaad_local.db")
    SESSION_CACHE_MAX_AGE_DAYS: int = 7

    # --- Email confirmation lifecycle ---
    CONFIRMATION_WINDOW_S: int = 600
    POLL_INTERVAL_S: float = 15.0
    TICK_INTERVAL_S: float = 1.0
    MANUAL_CONFIRM_DEBOUNCE_S: float = 2.0
    # Applied when a profile has no usable confirmation_sent_at.
    MISSING_SENT_AT_GRACE_S: int = 300

    # --- Profiles ---
    DEFAULT_ROLE: str = "deaf"

    # --- Deep links ---
    PASSWORD_RESET_REDIRECT: str = "samvaad://reset-password"
    EMAIL_CONFIRM_REDIRECT: str = "samvaad://confirm-email"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "samvaad.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        This validator logs a warning so operators know the engine is
        running with placeholder values.
        """
        _log = logging.getLogger("samvaad.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty: identity provider and profile "
                "store are unavailable."
            )

        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_SERVICE_ROLE_KEY is empty: expired accounts can "
                "not be reaped from the identity provider."
            )

        return self

    def validate_lifecycle_timings(self) -> None:
        """Validate that the confirmation timings are coherent.

        Raises:
            ValueError: If an interval is non-positive or the poll interval
                is not shorter than the confirmation window.
        """
        if self.CONFIRMATION_WINDOW_S <= 0:
            raise ValueError("CONFIRMATION_WINDOW_S must be positive")
        if self.TICK_INTERVAL_S <= 0 or self.POLL_INTERVAL_S <= 0:
            raise ValueError("POLL_INTERVAL_S and TICK_INTERVAL_S must be positive")
        if self.POLL_INTERVAL_S >= self.CONFIRMATION_WINDOW_S:
            raise ValueError("POLL_INTERVAL_S must be shorter than the confirmation window")


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so the lock is only taken during first initialisation.

    Prefer direct constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
