"""
Business Logic Services Package.

Contains the account lifecycle services: roll-number allocation, profile
reconciliation, confirmation tracking, expiry reaping, manual
confirmation, account operations and the presentation-facing session
state facade.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the application layer can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from samvaad.auth import SessionManager
from samvaad.config import AppConfig
from samvaad.database import DatabaseManager
from samvaad.logger import get_logger
from samvaad.models.enums import UserRole
from samvaad.repositories.identity_repository import SupabaseIdentityProvider
from samvaad.repositories.profile_repository import ProfileRepository
from samvaad.services.auth_service import AuthService
from samvaad.services.confirmation_tracker import ConfirmationTracker
from samvaad.services.expiry_reaper import ExpiryReaper
from samvaad.services.manual_confirmation import ManualConfirmationService
from samvaad.services.pending_signup_cache import PendingSignupCacheService
from samvaad.services.profile_service import ProfileService
from samvaad.services.reconciliation import ProfileReconciliationService
from samvaad.services.roll_number import RollNumberAllocator
from samvaad.services.session_cache import SessionTokenCache
from samvaad.services.session_state import SessionStateService
from samvaad.utils.machine_cipher import MachineBoundCipher


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    # --- Infrastructure ---
    pending_signup_cache: PendingSignupCacheService
    session_token_cache: SessionTokenCache

    # --- Lifecycle core ---
    roll_number_allocator: RollNumberAllocator
    reconciliation_service: ProfileReconciliationService
    expiry_reaper: ExpiryReaper
    confirmation_tracker: ConfirmationTracker
    manual_confirmation_service: ManualConfirmationService

    # --- Account operations & facade ---
    auth_service: AuthService
    profile_service: ProfileService
    session_state_service: SessionStateService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionManager,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with Supabase + SQLite ready.
        config: Application configuration.
        session: The shared session state holder.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    config.validate_lifecycle_timings()
    logger = get_logger("samvaad.services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(
        db=db,
        logger=logger,
        table=config.PROFILES_TABLE,
        link_table=config.PARENT_CHILD_TABLE,
    )
    identity_provider = SupabaseIdentityProvider(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Local encrypted caches
    # ------------------------------------------------------------------
    cipher = MachineBoundCipher(logger=logger)
    pending_signup_cache = PendingSignupCacheService(db=db, cipher=cipher, logger=logger)
    session_token_cache = SessionTokenCache(
        db=db,
        cipher=cipher,
        logger=logger,
        max_age_days=config.SESSION_CACHE_MAX_AGE_DAYS,
    )

    # ------------------------------------------------------------------
    # 3. Leaf services
    # ------------------------------------------------------------------
    allocator = RollNumberAllocator(store=profile_repo, logger=logger)
    reconciliation_service = ProfileReconciliationService(
        store=profile_repo,
        pending_cache=pending_signup_cache,
        allocator=allocator,
        logger=logger,
        default_role=UserRole(config.DEFAULT_ROLE),
    )
    expiry_reaper = ExpiryReaper(
        store=profile_repo,
        identities=identity_provider,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 4. Confirmation lifecycle
    # ------------------------------------------------------------------
    confirmation_tracker = ConfirmationTracker(
        store=profile_repo,
        identities=identity_provider,
        reaper=expiry_reaper,
        logger=logger,
        window_s=config.CONFIRMATION_WINDOW_S,
        grace_s=config.MISSING_SENT_AT_GRACE_S,
    )
    manual_confirmation_service = ManualConfirmationService(
        store=profile_repo,
        identities=identity_provider,
        reconciliation=reconciliation_service,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 5. Account operations & presentation facade
    # ------------------------------------------------------------------
    auth_service = AuthService(
        identities=identity_provider,
        store=profile_repo,
        pending_cache=pending_signup_cache,
        allocator=allocator,
        reconciliation=reconciliation_service,
        session=session,
        token_cache=session_token_cache,
        logger=logger,
        password_reset_redirect=config.PASSWORD_RESET_REDIRECT,
        email_confirm_redirect=config.EMAIL_CONFIRM_REDIRECT,
    )
    profile_service = ProfileService(store=profile_repo, session=session, logger=logger)
    session_state_service = SessionStateService(
        identities=identity_provider,
        reconciliation=reconciliation_service,
        tracker=confirmation_tracker,
        manual_confirmation=manual_confirmation_service,
        auth_service=auth_service,
        profile_service=profile_service,
        session=session,
        logger=logger,
        window_s=config.CONFIRMATION_WINDOW_S,
        poll_interval_s=config.POLL_INTERVAL_S,
        tick_interval_s=config.TICK_INTERVAL_S,
        manual_debounce_s=config.MANUAL_CONFIRM_DEBOUNCE_S,
    )

    return ServiceContainer(
        pending_signup_cache=pending_signup_cache,
        session_token_cache=session_token_cache,
        roll_number_allocator=allocator,
        reconciliation_service=reconciliation_service,
        expiry_reaper=expiry_reaper,
        confirmation_tracker=confirmation_tracker,
        manual_confirmation_service=manual_confirmation_service,
        auth_service=auth_service,
        profile_service=profile_service,
        session_state_service=session_state_service,
    )
