"""
Identity Repository.

Supabase Auth implementation of the ``IdentityProvider`` protocol.
Converts gotrue ``User`` / ``Session`` objects into the provider-agnostic
``Identity`` / ``AuthSession`` models at the boundary.

Admin operations (lookup by id, deletion) use the service-role client.
"""

from __future__ import annotations

from typing import Any, Optional

from supabase import AuthApiError

from samvaad.database import DatabaseManager
from samvaad.errors import IdentityProviderError
from samvaad.interfaces import AuthEventHandler, Unsubscribe
from samvaad.logger import StructuredLogger
from samvaad.models.enums import AuthEvent
from samvaad.models.identity import AuthSession, Identity
from samvaad.repositories.base_repository import BaseRepository

_NOT_FOUND_STATUSES: frozenset[int] = frozenset({404})
_INVALID_TOKEN_STATUSES: frozenset[int] = frozenset({401, 403})


def _to_identity(user: Any) -> Identity:
    """Convert a gotrue ``User`` into an ``Identity``."""
    return Identity(
        id=str(user.id),
        email=user.email or "",
        user_metadata=dict(user.user_metadata or {}),
        email_confirmed_at=getattr(user, "email_confirmed_at", None),
        created_at=getattr(user, "created_at", None),
    )


def _to_session(session: Any) -> AuthSession:
    """Convert a gotrue ``Session`` into an ``AuthSession``."""
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        identity=_to_identity(session.user),
    )


def _api_status(exc: Exception) -> Optional[int]:
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


class SupabaseIdentityProvider(BaseRepository):
    """Identity provider backed by Supabase Auth."""

    ERROR_TYPE = IdentityProviderError

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Account & session
    # ------------------------------------------------------------------

    async def create_account(
        self, email: str, password: str, metadata: dict[str, Any],
    ) -> tuple[Identity, Optional[AuthSession]]:
        """Create the identity.  A session is only returned when the
        project does not require email confirmation."""
        async def _op() -> tuple[Identity, Optional[AuthSession]]:
            response = await self.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata},
            })
            if response.user is None:
                raise IdentityProviderError("sign_up returned no user")
            session = _to_session(response.session) if response.session else None
            return _to_identity(response.user), session

        return await self._execute(_op, operation_name="create_account")

    async def authenticate(self, email: str, password: str) -> AuthSession:
        async def _op() -> AuthSession:
            response = await self.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
            if response.session is None:
                raise IdentityProviderError("sign_in returned no session")
            return _to_session(response.session)

        return await self._execute(_op, operation_name="authenticate")

    async def sign_out(self) -> None:
        async def _op() -> None:
            await self.supabase.auth.sign_out()

        await self._execute(_op, operation_name="sign_out")

    async def get_current_session(self) -> Optional[AuthSession]:
        async def _op() -> Optional[AuthSession]:
            session = await self.supabase.auth.get_session()
            return _to_session(session) if session else None

        return await self._execute(_op, operation_name="get_current_session")

    async def get_current_identity(self) -> Optional[Identity]:
        async def _op() -> Optional[Identity]:
            response = await self.supabase.auth.get_user()
            if response is None or response.user is None:
                return None
            return _to_identity(response.user)

        return await self._execute(_op, operation_name="get_current_identity")

    async def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        async def _op() -> Optional[AuthSession]:
            response = await self.supabase.auth.refresh_session(refresh_token)
            return _to_session(response.session) if response.session else None

        return await self._execute(_op, operation_name="refresh_session")

    async def get_identity_for_token(self, token: str) -> Optional[Identity]:
        """Resolve the identity a confirmation/access token belongs to.

        An invalid or expired token yields ``None``.
        """
        async def _op() -> Optional[Identity]:
            try:
                response = await self.supabase.auth.get_user(token)
            except AuthApiError as exc:
                if _api_status(exc) in _INVALID_TOKEN_STATUSES:
                    return None
                raise
            if response is None or response.user is None:
                return None
            return _to_identity(response.user)

        return await self._execute(_op, operation_name="get_identity_for_token")

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        async def _op() -> None:
            await self.supabase.auth.reset_password_for_email(
                email, {"redirect_to": redirect_to},
            )

        await self._execute(_op, operation_name="send_password_reset")

    async def resend_confirmation(self, email: str, redirect_to: str) -> None:
        async def _op() -> None:
            await self.supabase.auth.resend({
                "type": "signup",
                "email": email,
                "options": {"email_redirect_to": redirect_to},
            })

        await self._execute(_op, operation_name="resend_confirmation")

    async def update_password(self, password: str) -> None:
        async def _op() -> None:
            await self.supabase.auth.update_user({"password": password})

        await self._execute(_op, operation_name="update_password")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def get_identity_by_id(self, identity_id: str) -> Optional[Identity]:
        """Admin lookup.  A missing identity yields ``None``."""
        async def _op() -> Optional[Identity]:
            try:
                response = await self.supabase_admin.auth.admin.get_user_by_id(identity_id)
            except AuthApiError as exc:
                if _api_status(exc) in _NOT_FOUND_STATUSES or "not found" in str(exc).lower():
                    return None
                raise
            if response is None or response.user is None:
                return None
            return _to_identity(response.user)

        return await self._execute(_op, operation_name="get_identity_by_id")

    async def delete_identity(self, identity_id: str) -> None:
        async def _op() -> None:
            await self.supabase_admin.auth.admin.delete_user(identity_id)
            self._logger.info("Identity deleted: %s", identity_id)

        await self._execute(_op, operation_name="delete_identity")

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def subscribe(self, handler: AuthEventHandler) -> Unsubscribe:
        """Forward Supabase auth state changes to *handler*.

        Events outside :class:`AuthEvent` (MFA etc.) are dropped.
        """
        def _callback(event: str, session: Any) -> None:
            try:
                auth_event = AuthEvent(str(event))
            except ValueError:
                self._logger.debug("Ignoring auth event %s", event)
                return
            handler(auth_event, _to_session(session) if session else None)

        subscription = self.supabase.auth.on_auth_state_change(_callback)
        return subscription.unsubscribe
