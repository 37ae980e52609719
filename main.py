"""
Samvaad Account Engine Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, restores the identity-provider session and,
when the signed-in account is still awaiting email confirmation, runs
the confirmation watcher until it is confirmed or expires.

The presentation layer is headless here: lifecycle callbacks are logged.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import atexit
import sys
import traceback

from samvaad.auth import SessionManager
from samvaad.config import get_config
from samvaad.database import DatabaseManager
from samvaad.logger import StructuredLogger, get_logger
from samvaad.schema import initialize_schema
from samvaad.services import create_services


async def main() -> None:
    """Application entry point: wire dependencies and watch a pending account."""
    logger: StructuredLogger = get_logger("samvaad.main")
    logger.info("Starting Samvaad account engine...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase optional, SQLite always)
    # ------------------------------------------------------------------
    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=config.LOCAL_CACHE_PATH,
        logger=get_logger("samvaad.database"),
    )
    # DatabaseManager.close() is idempotent.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. Local schema (pending signups, encrypted session token)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, get_logger("samvaad.schema"))

    # ------------------------------------------------------------------
    # 4. Session state + service container
    # ------------------------------------------------------------------
    session = SessionManager()
    services = create_services(db=db, config=config, session=session)
    state_service = services["session_state_service"]

    try:
        state = await state_service.initialize()
        profile = state.profile

        if state.identity is None:
            logger.info("No active session. Sign in to continue.")
        elif profile is None or profile.email_confirmed:
            logger.info(
                "Signed in as %s (roll %s).",
                state.identity.email,
                profile.roll_number if profile else "pending",
            )
        else:
            # ----------------------------------------------------------
            # 5. Pending confirmation: watch until confirmed or expired
            # ----------------------------------------------------------
            finished = asyncio.Event()

            def _on_confirmed() -> None:
                logger.info("Email confirmed for %s.", state.identity.email)
                finished.set()

            def _on_timeout() -> None:
                logger.warning(
                    "Confirmation window expired for %s; the account will be removed.",
                    state.identity.email,
                )
                finished.set()

            await state_service.start_confirmation_watch(
                state.identity.id, on_confirmed=_on_confirmed, on_timeout=_on_timeout,
            )
            await finished.wait()

        for notification in state_service.state.notifications:
            logger.warning("Notification: %s", notification.message)
    finally:
        await state_service.close()
        db.close()
        logger.info("Samvaad account engine shut down.")


def _show_fatal_error(exc: BaseException) -> None:
    """Write a fatal error to stderr so the failure is never swallowed."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(1)
