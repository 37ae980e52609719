"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the process-wide
"current user" entry: identity, profile, session handle, a loading flag
and transient notifications.

Writers go through the entry points below; the last completed write
wins.  Readers receive an immutable :class:`AuthState` snapshot.

Usage::

    from samvaad.auth import SessionManager

    session = SessionManager()
    session.set_authenticated(identity, profile, auth_session)
    state = session.snapshot
    state.profile.roll_number
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from samvaad.models.auth_models import Notification
from samvaad.models.identity import AuthSession, Identity
from samvaad.models.profile import Profile


class AuthState(BaseModel):
    """Immutable snapshot of the session cache."""

    identity: Optional[Identity] = None
    profile: Optional[Profile] = None
    session: Optional[AuthSession] = None
    loading: bool = True
    notifications: tuple[Notification, ...] = ()

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


class SessionManager:
    """Injectable holder for the current account state.

    Pass a single ``SessionManager`` through your dependency-injection
    layer so every component shares the same state.
    """

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._state: AuthState = AuthState()

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AuthState:
        with self._lock:
            return self._state

    def get_current_identity(self) -> Identity:
        """Return the authenticated identity.

        Raises:
            RuntimeError: If no identity is currently authenticated.
        """
        with self._lock:
            if self._state.identity is None:
                raise RuntimeError("No user is currently authenticated. Login required.")
            return self._state.identity

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._state.identity is not None

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._state.session.refresh_token if self._state.session else None

    @property
    def is_token_expired(self) -> bool:
        """``True`` when the access token has expired or was never set."""
        with self._lock:
            session = self._state.session
            if session is None or session.expires_at is None:
                return True
            expiry = datetime.fromtimestamp(session.expires_at, tz=timezone.utc)
            return datetime.now(timezone.utc) >= (expiry - timedelta(seconds=30))

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self._replace(loading=loading)

    def set_authenticated(
        self,
        identity: Identity,
        profile: Optional[Profile],
        session: Optional[AuthSession] = None,
    ) -> None:
        """Record the signed-in account.  A ``None`` session keeps the current handle."""
        with self._lock:
            self._state = self._state.model_copy(update={
                "identity": identity,
                "profile": profile,
                "session": session if session is not None else self._state.session,
                "loading": False,
            })

    def set_profile(self, profile: Optional[Profile]) -> None:
        self._replace(profile=profile)

    def set_session(self, session: Optional[AuthSession]) -> None:
        self._replace(session=session)

    def clear(self) -> None:
        """Remove identity, profile and session.  Notifications are kept."""
        self._replace(identity=None, profile=None, session=None, loading=False)

    def push_notification(self, message: str, level: str = "error") -> Notification:
        notification = Notification(message=message, level=level)
        with self._lock:
            self._state = self._state.model_copy(update={
                "notifications": self._state.notifications + (notification,),
            })
        return notification

    def dismiss_notification(self, notification_id: str) -> None:
        with self._lock:
            remaining = tuple(
                n for n in self._state.notifications if n.id != notification_id
            )
            self._state = self._state.model_copy(update={"notifications": remaining})

    def _replace(self, **changes: object) -> None:
        with self._lock:
            self._state = self._state.model_copy(update=changes)
