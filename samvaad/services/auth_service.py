"""
Authentication Service.

Single orchestrator for the account operations of the Samvaad engine:
signup, sign-in, sign-out, password reset and change, email
confirmation by token, confirmation resend and session token refresh.

Sits between the presentation layer and the identity provider, profile
store and local caches.  All methods return typed ``AuthResult`` or
``ValidationResult`` models; the presentation layer never inspects raw
exceptions.
"""

from __future__ import annotations

import re
from typing import Optional

from samvaad.auth import SessionManager
from samvaad.errors import OfflineError, StoreError
from samvaad.interfaces import IdentityProvider, PendingSignupCache, ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    SUPABASE_ERROR_MAP,
    SignupData,
    ValidationResult,
)
from samvaad.models.identity import AuthSession
from samvaad.models.profile import Profile
from samvaad.services.reconciliation import ProfileReconciliationService
from samvaad.services.roll_number import RollNumberAllocator
from samvaad.services.session_cache import SessionTokenCache
from samvaad.utils.audit import log_audit_event
from samvaad.utils.timestamps import utc_now


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

_MIN_PASSWORD_LENGTH: int = 8

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

_NETWORK_MESSAGE: str = "Cannot reach the server. Check your internet connection."


class AuthService:
    """Account operations over the identity provider and profile store.

    Parameters
    ----------
    identities:
        Identity provider (Supabase Auth in production).
    store:
        Profile store (the ``users`` table).
    pending_cache:
        Local cache for signup forms awaiting their profile row.
    allocator:
        Roll-number allocator.
    reconciliation:
        Profile reconciliation, run after every sign-in.
    session:
        Shared session state.
    token_cache:
        Encrypted refresh-token cache.
    logger:
        Structured logger.
    password_reset_redirect, email_confirm_redirect:
        Deep links embedded in outgoing emails.
    """

    def __init__(
        self,
        identities: IdentityProvider,
        store: ProfileStore,
        pending_cache: PendingSignupCache,
        allocator: RollNumberAllocator,
        reconciliation: ProfileReconciliationService,
        session: SessionManager,
        token_cache: SessionTokenCache,
        logger: StructuredLogger,
        password_reset_redirect: str = "samvaad://reset-password",
        email_confirm_redirect: str = "samvaad://confirm-email",
    ) -> None:
        self._identities = identities
        self._store = store
        self._pending_cache = pending_cache
        self._allocator = allocator
        self._reconciliation = reconciliation
        self._session = session
        self._token_cache = token_cache
        self._logger = logger
        self._password_reset_redirect = password_reset_redirect
        self._email_confirm_redirect = email_confirm_redirect

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        """Validate an email address against a simplified RFC 5322 regex."""
        if not email or not email.strip():
            return ValidationResult(is_valid=False, error_message="Email address is required.")
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(
                is_valid=False, error_message="Please enter a valid email address.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(password: str) -> ValidationResult:
        """Enforce the password policy.

        Policy: minimum 8 characters, at least one letter and one digit.
        """
        if len(password) < _MIN_PASSWORD_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=f"Password must be at least {_MIN_PASSWORD_LENGTH} characters.",
            )
        if not re.search(r"[A-Za-z]", password):
            return ValidationResult(
                is_valid=False, error_message="Password must contain at least one letter.",
            )
        if not re.search(r"\d", password):
            return ValidationResult(
                is_valid=False, error_message="Password must contain at least one digit.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_name(name: str, field_label: str = "Name") -> ValidationResult:
        """Validate a display name.

        Rejects control characters (including newlines and tabs) to
        prevent log injection and display corruption.
        """
        stripped = name.strip()
        if not stripped:
            return ValidationResult(is_valid=False, error_message=f"{field_label} is required.")
        if len(stripped) < 2:
            return ValidationResult(
                is_valid=False,
                error_message=f"{field_label} must be at least 2 characters.",
            )
        if _CONTROL_CHAR_RE.search(stripped):
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"{field_label} contains invalid characters. "
                    "Only printable characters are allowed."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return email.strip().lower()

    # ==================================================================
    # Signup
    # ==================================================================

    async def sign_up(self, data: SignupData) -> AuthResult:
        """Create the identity and its unconfirmed profile.

        Order of effects:

        1. allocate a roll number;
        2. create the identity with metadata ``{name, role, roll_number}``;
        3. stage the form (minus password) in the pending-signup cache;
        4. upsert the profile with ``email_confirmed=False`` and
           ``confirmation_sent_at=now``;
        5. delete the staged form.

        If step 4 fails the staged form stays cached and reconciliation
        backfills the profile on the next session event.  The signup still
        succeeds, with ``profile=None``.
        """
        password = data.password.get_secret_value()
        for check in (
            self.validate_name(data.name),
            self.validate_email(data.email),
            self.validate_password(password),
        ):
            if not check.is_valid:
                return AuthResult(
                    success=False,
                    error_code=AuthErrorCode.VALIDATION_ERROR,
                    error_message=check.error_message,
                )

        data = data.model_copy(update={
            "email": self.normalize_email(data.email),
            "name": data.name.strip(),
        })

        try:
            roll_number = await self._allocator.allocate()
            identity, auth_session = await self._identities.create_account(
                data.email,
                password,
                {"name": data.name, "role": str(data.role), "roll_number": roll_number},
            )
        except Exception as exc:
            return self._classify_error(exc, operation="sign_up")

        pending = data.to_pending(identity.id)
        try:
            await self._pending_cache.set(identity.id, pending)
        except StoreError as exc:
            self._logger.warning("Could not stage pending signup for %s: %s", identity.id, exc)

        now = utc_now()
        profile: Optional[Profile] = Profile(
            id=identity.id,
            email=data.email,
            name=data.name,
            role=data.role,
            roll_number=roll_number,
            email_confirmed=False,
            confirmation_sent_at=now,
            created_at=now,
            updated_at=now,
            **pending.role_specific_fields(),
        )
        try:
            profile = await self._store.upsert(profile)
        except StoreError as exc:
            self._logger.error(
                "Profile write failed for %s; pending signup kept for reconciliation: %s",
                identity.id,
                exc,
            )
            profile = None
        else:
            await self._reconciliation.discard_pending(identity.id)
            log_audit_event(
                logger=self._logger,
                action="PROFILE_CREATE",
                entity_type="Profile",
                entity_id=identity.id,
                user_id=identity.id,
                details={"role": str(data.role), "roll_number": roll_number, "source": "signup"},
            )

        if auth_session is not None:
            self._session.set_authenticated(identity, profile, auth_session)
            await self._token_cache.cache_session(
                identity.id, identity.email, auth_session.refresh_token,
            )

        self._logger.info(
            "User registered: %s (%s)",
            data.name,
            data.email,
            extra={"event": "REGISTER", "user_id": identity.id, "email": data.email},
        )
        return AuthResult(
            success=True,
            identity=identity,
            profile=profile,
            session=auth_session,
            roll_number=roll_number,
        )

    # ==================================================================
    # Sign-in / sign-out
    # ==================================================================

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Authenticate, reconcile the profile and cache the refresh token."""
        email_check = self.validate_email(email)
        if not email_check.is_valid:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=email_check.error_message,
            )
        email = self.normalize_email(email)

        try:
            auth_session = await self._identities.authenticate(email, password)
        except Exception as exc:
            return self._classify_error(exc, operation="sign_in")

        return await self._establish(auth_session, event="LOGIN")

    async def sign_out(self) -> None:
        """Server-side sign-out, then clear local state and the cached token.

        Server revocation is best-effort so that offline sign-out still works.
        """
        snapshot = self._session.snapshot
        user_id = snapshot.identity.id if snapshot.identity else "unknown"

        try:
            await self._identities.sign_out()
        except OfflineError:
            self._logger.debug("Offline; skipping server-side sign_out for %s.", user_id)
        except StoreError as exc:
            self._logger.warning("Server-side sign_out failed for %s: %s", user_id, exc)

        self._session.clear()
        await self._token_cache.clear_session()
        self._logger.info(
            "User signed out: %s", user_id, extra={"event": "LOGOUT", "user_id": user_id},
        )

    async def resume_cached_session(self) -> AuthResult:
        """Re-establish a session from the encrypted refresh token.

        Fails with ``SESSION_EXPIRED`` when no usable token is cached; the
        user then has to sign in again.
        """
        cached = await self._token_cache.load_cached_session()
        if cached is None:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.SESSION_EXPIRED,
                error_message="Please sign in to continue.",
            )
        try:
            auth_session = await self._identities.refresh_session(cached.refresh_token)
        except Exception as exc:
            self._logger.warning("Cached session could not be resumed: %s", exc)
            await self._token_cache.clear_session()
            return self._classify_error(exc, operation="resume_cached_session")

        if auth_session is None:
            await self._token_cache.clear_session()
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.SESSION_EXPIRED,
                error_message="Your session has expired. Please sign in again.",
            )
        return await self._establish(auth_session, event="SESSION_RESUMED")

    # ==================================================================
    # Token refresh
    # ==================================================================

    async def refresh_session_token(self) -> AuthResult:
        """Refresh the access token when it is (about to be) expired.

        Transient network errors are skipped silently (retry next cycle);
        a rejected refresh token yields ``SESSION_EXPIRED``.
        """
        if not self._session.is_authenticated or not self._session.is_token_expired:
            return AuthResult(success=True)

        refresh_token = self._session.refresh_token
        if not refresh_token:
            return AuthResult(success=True)

        try:
            new_session = await self._identities.refresh_session(refresh_token)
        except StoreError as exc:
            if isinstance(exc, OfflineError) or self._is_network_error(exc):
                self._logger.debug("Network error during token refresh; will retry.")
                return AuthResult(success=True)
            self._logger.warning(
                "Token refresh failed (auth error): %s. Forcing sign-out.",
                exc,
                extra={"event": "SESSION_EXPIRED"},
            )
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.SESSION_EXPIRED,
                error_message="Your session has expired. Please sign in again.",
            )

        if new_session is not None:
            self._session.set_session(new_session)
            await self._token_cache.cache_session(
                new_session.identity.id, new_session.identity.email, new_session.refresh_token,
            )
            self._logger.info("Session token refreshed.")
        return AuthResult(success=True)

    # ==================================================================
    # Password reset & change
    # ==================================================================

    async def reset_password(self, email: str) -> AuthResult:
        """Send a password-reset email.

        Uses an anti-enumeration response: the same success message is
        returned whether or not the email is registered.
        """
        email_check = self.validate_email(email)
        if not email_check.is_valid:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=email_check.error_message,
            )
        email = self.normalize_email(email)

        try:
            await self._identities.send_password_reset(email, self._password_reset_redirect)
            self._logger.info(
                "Password reset requested for %s.",
                email,
                extra={"event": "PASSWORD_RESET_REQUESTED", "email": email},
            )
        except StoreError as exc:
            if isinstance(exc, OfflineError) or self._is_network_error(exc):
                return AuthResult(
                    success=False,
                    error_code=AuthErrorCode.NETWORK_ERROR,
                    error_message=_NETWORK_MESSAGE,
                )
            self._logger.warning("Password reset error for %s: %s", email, exc)

        return AuthResult(
            success=True,
            error_message="If this email is registered, you will receive a password reset link.",
        )

    async def update_password(self, password: str) -> AuthResult:
        """Change the password of the signed-in identity."""
        if not self._session.is_authenticated:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NOT_AUTHENTICATED,
                error_message="Please sign in to change your password.",
            )
        pw_check = self.validate_password(password)
        if not pw_check.is_valid:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=pw_check.error_message,
            )

        identity = self._session.get_current_identity()
        try:
            await self._identities.update_password(password)
        except Exception as exc:
            return self._classify_error(exc, operation="update_password")

        log_audit_event(
            logger=self._logger,
            action="PASSWORD_CHANGE",
            entity_type="Identity",
            entity_id=identity.id,
            user_id=identity.id,
        )
        return AuthResult(success=True, identity=identity)

    # ==================================================================
    # Email confirmation
    # ==================================================================

    async def confirm_email(self, token: str) -> AuthResult:
        """Mark the profile behind a confirmation *token* as confirmed."""
        try:
            identity = await self._identities.get_identity_for_token(token)
            if identity is None:
                return AuthResult(
                    success=False,
                    error_code=AuthErrorCode.INVALID_CREDENTIALS,
                    error_message="This confirmation link is invalid or has expired.",
                )
            now = utc_now()
            profile = await self._store.update(identity.id, {
                "email_confirmed": True,
                "email_confirmed_at": now.isoformat(),
                "updated_at": now.isoformat(),
            })
        except Exception as exc:
            return self._classify_error(exc, operation="confirm_email")

        if profile is None:
            return AuthResult(
                success=False,
                identity=identity,
                error_code=AuthErrorCode.NOT_FOUND,
                error_message="No profile exists for this account yet.",
            )

        log_audit_event(
            logger=self._logger,
            action="EMAIL_CONFIRM",
            entity_type="Profile",
            entity_id=identity.id,
            user_id=identity.id,
            details={"source": "token"},
        )
        if self._session.is_authenticated and self._session.snapshot.identity.id == identity.id:
            self._session.set_profile(profile)
        return AuthResult(success=True, identity=identity, profile=profile)

    async def resend_confirmation_email(
        self, email: str, identity_id: Optional[str] = None,
    ) -> AuthResult:
        """Re-send the confirmation email.

        When *identity_id* is known and its profile is still unconfirmed,
        the confirmation window restarts (``confirmation_sent_at=now``).
        """
        email_check = self.validate_email(email)
        if not email_check.is_valid:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=email_check.error_message,
            )
        email = self.normalize_email(email)

        try:
            await self._identities.resend_confirmation(email, self._email_confirm_redirect)
            profile: Optional[Profile] = None
            if identity_id is not None:
                profile = await self._store.get_by_id(identity_id)
                if profile is not None and not profile.email_confirmed:
                    now = utc_now()
                    profile = await self._store.update(identity_id, {
                        "confirmation_sent_at": now.isoformat(),
                        "updated_at": now.isoformat(),
                    }) or profile
        except Exception as exc:
            return self._classify_error(exc, operation="resend_confirmation_email")

        self._logger.info(
            "Confirmation email re-sent to %s.",
            email,
            extra={"event": "CONFIRMATION_RESENT", "email": email},
        )
        return AuthResult(success=True, profile=profile)

    # ==================================================================
    # Private helpers
    # ==================================================================

    async def _establish(self, auth_session: AuthSession, *, event: str) -> AuthResult:
        identity = auth_session.identity
        profile = await self._reconciliation.ensure_profile(identity)
        self._session.set_authenticated(identity, profile, auth_session)

        cached_ok = await self._token_cache.cache_session(
            identity.id, identity.email, auth_session.refresh_token,
        )
        if not cached_ok:
            self._logger.warning(
                "Session caching failed for %s; the session cannot be resumed later.",
                identity.email,
            )

        self._logger.info(
            "User authenticated: %s",
            identity.email,
            extra={"event": event, "user_id": identity.id, "email": identity.email},
        )
        return AuthResult(
            success=True,
            identity=identity,
            profile=profile,
            session=auth_session,
            roll_number=profile.roll_number if profile else None,
        )

    @staticmethod
    def _is_network_error(exc: Exception) -> bool:
        cause = exc.original_error if isinstance(exc, StoreError) else exc
        return isinstance(cause, (ConnectionError, TimeoutError))

    def _classify_error(self, exc: Exception, *, operation: str) -> AuthResult:
        """Map a provider, store or network exception to an ``AuthResult``."""
        if isinstance(exc, OfflineError) or self._is_network_error(exc):
            self._logger.warning(
                "Network error during %s: %s", operation, exc,
                extra={"event": "NETWORK_ERROR", "operation": operation},
            )
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message=_NETWORK_MESSAGE,
            )

        cause = exc.original_error if isinstance(exc, StoreError) and exc.original_error else exc
        error_str = f"{getattr(cause, 'code', '') or ''} {cause}".lower()
        for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
            if code_key in error_str:
                self._logger.warning(
                    "Auth error during %s (%s): %s", operation, code_key, exc,
                    extra={"event": "AUTH_FAILED", "error_code": code_key},
                )
                return AuthResult(
                    success=False, error_code=error_code, error_message=human_message,
                )

        self._logger.error(
            "Unexpected error during %s: %s", operation, exc,
            extra={"event": "AUTH_FAILED", "error_code": "unknown"},
        )
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.UNKNOWN_ERROR,
            error_message="An unexpected error occurred. Please try again later.",
        )
