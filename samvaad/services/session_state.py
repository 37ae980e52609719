"""
Session State Service.

Presentation-facing facade over the account lifecycle.  It owns the
wiring between identity-provider events, profile reconciliation, the
confirmation watcher and the shared :class:`SessionManager`.

Responsibilities:
    - restore the session at startup and reconcile its profile;
    - react to provider events (``SIGNED_IN``, ``SIGNED_OUT``,
      ``USER_UPDATED``, ``TOKEN_REFRESHED``);
    - wrap lifecycle operations so that a collaborator failure becomes a
      dismissible notification and leaves prior state intact;
    - debounce manual confirmation triggers;
    - run at most one confirmation watcher at a time.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Coroutine, Optional

from samvaad.auth import AuthState, SessionManager
from samvaad.errors import StoreError
from samvaad.interfaces import IdentityProvider, Unsubscribe
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    ConfirmationStatus,
    ManualConfirmResult,
    SignupData,
)
from samvaad.models.enums import AuthEvent, WatcherState
from samvaad.models.identity import AuthSession
from samvaad.models.profile import Profile, ProfileUpdate
from samvaad.models.service_models import ServiceResult
from samvaad.services.auth_service import AuthService
from samvaad.services.base_service import BaseService
from samvaad.services.confirmation_tracker import ConfirmationTracker
from samvaad.services.confirmation_watcher import LifecycleCallback, ConfirmationWatcher
from samvaad.services.manual_confirmation import ManualConfirmationService
from samvaad.services.profile_service import ProfileService
from samvaad.services.reconciliation import ProfileReconciliationService

_REFRESH_EVENTS: frozenset[AuthEvent] = frozenset({
    AuthEvent.INITIAL_SESSION,
    AuthEvent.SIGNED_IN,
    AuthEvent.USER_UPDATED,
})


class SessionStateService(BaseService):
    """Keeps the cached "current user" consistent across lifecycle triggers."""

    def __init__(
        self,
        identities: IdentityProvider,
        reconciliation: ProfileReconciliationService,
        tracker: ConfirmationTracker,
        manual_confirmation: ManualConfirmationService,
        auth_service: AuthService,
        profile_service: ProfileService,
        session: SessionManager,
        logger: StructuredLogger,
        window_s: float = 600,
        poll_interval_s: float = 15.0,
        tick_interval_s: float = 1.0,
        manual_debounce_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(logger)
        self._identities = identities
        self._reconciliation = reconciliation
        self._tracker = tracker
        self._manual = manual_confirmation
        self._auth = auth_service
        self._profiles = profile_service
        self._session = session

        self._window_s = window_s
        self._poll_interval_s = poll_interval_s
        self._tick_interval_s = tick_interval_s
        self._manual_debounce_s = manual_debounce_s
        self._clock = clock

        self._last_manual_trigger: Optional[float] = None
        self._watcher: Optional[ConfirmationWatcher] = None
        self._watched_id: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._session.snapshot

    @property
    def watcher(self) -> Optional[ConfirmationWatcher]:
        return self._watcher

    def watcher_state(self) -> WatcherState:
        return self._watcher.state if self._watcher is not None else WatcherState.IDLE

    def dismiss_notification(self, notification_id: str) -> None:
        self._session.dismiss_notification(notification_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> AuthState:
        """Restore the provider session, reconcile its profile, subscribe to events."""
        self._session.set_loading(True)
        if self._unsubscribe is None:
            try:
                self._unsubscribe = self._identities.subscribe(self._on_auth_event)
            except StoreError as exc:
                self._logger.warning("Auth event subscription unavailable: %s", exc)

        try:
            auth_session = await self._identities.get_current_session()
            if auth_session is None:
                self._session.clear()
            else:
                profile = await self._reconciliation.ensure_profile(auth_session.identity)
                self._session.set_authenticated(auth_session.identity, profile, auth_session)
        except StoreError as exc:
            self._notify_failure("Could not restore your session.", exc)
        finally:
            self._session.set_loading(False)
        return self._session.snapshot

    async def close(self) -> None:
        """Unsubscribe, stop the watcher and wait for background work."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.stop_confirmation_watch()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_auth_event(self, event: AuthEvent, auth_session: Optional[AuthSession]) -> None:
        """Apply one identity-provider lifecycle event to the cache."""
        self._logger.debug("Auth event %s", event)
        if event is AuthEvent.SIGNED_OUT:
            self._session.clear()
        elif event is AuthEvent.TOKEN_REFRESHED:
            if auth_session is not None:
                self._session.set_session(auth_session)
        elif event in _REFRESH_EVENTS:
            await self._load_current_user(auth_session)

    async def refresh_profile(self) -> Optional[Profile]:
        """Re-fetch identity and profile and overwrite the cache."""
        await self._load_current_user(None)
        return self._session.snapshot.profile

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    async def sign_up(self, data: SignupData) -> AuthResult:
        return await self._auth.sign_up(data)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        return await self._auth.sign_in(email, password)

    async def sign_out(self) -> None:
        await self.stop_confirmation_watch()
        await self._auth.sign_out()

    async def reset_password(self, email: str) -> AuthResult:
        return await self._auth.reset_password(email)

    async def update_password(self, password: str) -> AuthResult:
        return await self._auth.update_password(password)

    async def confirm_email(self, token: str) -> AuthResult:
        result = await self._auth.confirm_email(token)
        if (
            result.success
            and result.identity is not None
            and result.identity.id == self._watched_id
            and self._watcher is not None
        ):
            self._watcher.confirm_now()
        return result

    async def resend_confirmation_email(
        self, email: str, identity_id: Optional[str] = None,
    ) -> AuthResult:
        return await self._auth.resend_confirmation_email(email, identity_id)

    async def update_profile(self, identity_id: str, update: ProfileUpdate) -> ServiceResult[Profile]:
        return await self._profiles.update_profile(identity_id, update)

    async def connect_parent_child(
        self, parent_id: str, child_roll_number: str,
    ) -> ServiceResult[Profile]:
        return await self._profiles.connect_parent_child(parent_id, child_roll_number)

    async def get_user_by_roll_number(self, roll_number: str) -> ServiceResult[Profile]:
        return await self._profiles.get_user_by_roll_number(roll_number)

    # ------------------------------------------------------------------
    # Confirmation lifecycle
    # ------------------------------------------------------------------

    async def check_email_confirmation_status(self, identity_id: str) -> Optional[ConfirmationStatus]:
        """Tracker call with failure-to-notification wrapping.

        Returns ``None`` when the status could not be determined.
        """
        try:
            status = await self._tracker.check_status(identity_id)
        except StoreError as exc:
            self._notify_failure("Could not check your confirmation status.", exc)
            return None

        if status.needs_profile_creation:
            await self._reconcile_identity(identity_id)
        elif self._is_current(identity_id):
            if status.expired:
                self._session.clear()
            elif status.confirmed and not self._profile_confirmed():
                await self._load_current_user(None)
        return status

    async def manually_confirm_user_email(self, identity_id: str) -> ManualConfirmResult:
        """Manual override, debounced.

        A trigger less than ``manual_debounce_s`` after the previous
        accepted one is rejected without touching any collaborator.
        """
        now = self._clock()
        if (
            self._last_manual_trigger is not None
            and now - self._last_manual_trigger < self._manual_debounce_s
        ):
            return ManualConfirmResult(
                success=False,
                error_code=AuthErrorCode.CONFIRMATION_IN_PROGRESS,
                error_message="Please wait a moment before trying again.",
            )
        self._last_manual_trigger = now

        result = await self._manual.manual_confirm(identity_id)
        if not result.success:
            if result.error_code is not AuthErrorCode.CONFIRMATION_IN_PROGRESS:
                self._session.push_notification(
                    result.error_message or "Could not confirm your account.",
                )
            return result

        watcher = self._watcher if identity_id == self._watched_id else None
        if watcher is None or not watcher.confirm_now():
            await self._apply_confirmed(identity_id, result.profile)
        return result

    async def start_confirmation_watch(
        self,
        identity_id: str,
        on_confirmed: LifecycleCallback,
        on_timeout: LifecycleCallback,
    ) -> ConfirmationWatcher:
        """Start watching *identity_id*, replacing any running watcher."""
        await self.stop_confirmation_watch()

        def _confirmed() -> None:
            self._spawn(self._apply_confirmed(identity_id, None))
            on_confirmed()

        def _timed_out() -> None:
            self._spawn(self._apply_timeout(identity_id))
            on_timeout()

        watcher = ConfirmationWatcher(
            tracker=self._tracker,
            logger=self._logger,
            window_s=self._window_s,
            poll_interval_s=self._poll_interval_s,
            tick_interval_s=self._tick_interval_s,
            on_poll_error=lambda exc: self._notify_failure(
                "Could not check your confirmation status.", exc,
            ),
            on_profile_missing=lambda: self._reconcile_identity(identity_id),
        )
        self._watcher = watcher
        self._watched_id = identity_id
        watcher.start(identity_id, on_confirmed=_confirmed, on_timeout=_timed_out)
        return watcher

    async def stop_confirmation_watch(self) -> None:
        watcher, self._watcher, self._watched_id = self._watcher, None, None
        if watcher is not None:
            await watcher.stop()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_auth_event(self, event: AuthEvent, auth_session: Optional[AuthSession]) -> None:
        self._spawn(self.handle_auth_event(event, auth_session))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _load_current_user(self, auth_session: Optional[AuthSession]) -> None:
        try:
            identity = await self._identities.get_current_identity()
            if identity is None:
                self._session.clear()
                return
            profile = await self._reconciliation.ensure_profile(identity)
        except StoreError as exc:
            self._notify_failure("Could not refresh your profile.", exc)
            return
        self._session.set_authenticated(identity, profile, auth_session)

    async def _reconcile_identity(self, identity_id: str) -> Optional[Profile]:
        """Create the missing profile row so the confirmation clock starts."""
        try:
            identity = await self._identities.get_identity_by_id(identity_id)
        except StoreError as exc:
            self._notify_failure("Could not check your confirmation status.", exc)
            return None
        if identity is None:
            return None
        profile = await self._reconciliation.ensure_profile(identity)
        if profile is not None and self._is_current(identity_id):
            self._session.set_profile(profile)
        return profile

    async def _apply_confirmed(self, identity_id: str, profile: Optional[Profile]) -> None:
        if self._is_current(identity_id):
            if profile is not None:
                self._session.set_profile(profile)
            else:
                await self._load_current_user(None)
            return

        result = await self._auth.resume_cached_session()
        if not result.success:
            self._logger.info(
                "Account %s confirmed; no resumable session, sign-in required.", identity_id,
            )

    async def _apply_timeout(self, identity_id: str) -> None:
        status = await self.check_email_confirmation_status(identity_id)
        if status is not None and status.confirmed:
            self._logger.warning(
                "Countdown expired for %s but the account is confirmed.", identity_id,
            )

    def _is_current(self, identity_id: str) -> bool:
        identity = self._session.snapshot.identity
        return identity is not None and identity.id == identity_id

    def _profile_confirmed(self) -> bool:
        profile = self._session.snapshot.profile
        return profile is not None and profile.email_confirmed

    def _notify_failure(self, message: str, exc: Exception) -> None:
        self._logger.warning("%s %s", message, exc)
        self._session.push_notification(message)
