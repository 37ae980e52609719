"""
Collaborator Protocols.

The lifecycle services depend on these structural types rather than on
the Supabase-backed implementations, so that the in-process fakes used by
the test-suite (and any future provider) slot in without inheritance.

Every method is a suspension point.  Lookups return ``None`` for absence;
genuine failures raise a :class:`samvaad.errors.StoreError` subclass.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from samvaad.models.auth_models import PendingSignup
from samvaad.models.enums import AuthEvent
from samvaad.models.identity import AuthSession, Identity
from samvaad.models.profile import Profile

AuthEventHandler = Callable[[AuthEvent, Optional[AuthSession]], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class IdentityProvider(Protocol):
    """Account creation, authentication and session retrieval."""

    async def create_account(
        self, email: str, password: str, metadata: dict[str, Any],
    ) -> tuple[Identity, Optional[AuthSession]]: ...  # noqa: E704

    async def authenticate(self, email: str, password: str) -> AuthSession: ...  # noqa: E704

    async def sign_out(self) -> None: ...  # noqa: E704

    async def get_current_session(self) -> Optional[AuthSession]: ...  # noqa: E704

    async def get_current_identity(self) -> Optional[Identity]: ...  # noqa: E704

    async def get_identity_by_id(self, identity_id: str) -> Optional[Identity]: ...  # noqa: E704

    async def get_identity_for_token(self, token: str) -> Optional[Identity]: ...  # noqa: E704

    async def delete_identity(self, identity_id: str) -> None: ...  # noqa: E704

    async def refresh_session(self, refresh_token: str) -> Optional[AuthSession]: ...  # noqa: E704

    async def send_password_reset(self, email: str, redirect_to: str) -> None: ...  # noqa: E704

    async def resend_confirmation(self, email: str, redirect_to: str) -> None: ...  # noqa: E704

    async def update_password(self, password: str) -> None: ...  # noqa: E704

    def subscribe(self, handler: AuthEventHandler) -> Unsubscribe: ...  # noqa: E704


@runtime_checkable
class ProfileStore(Protocol):
    """The relational ``users`` table."""

    async def get_by_id(self, profile_id: str) -> Optional[Profile]: ...  # noqa: E704

    async def get_by_roll_number(self, roll_number: str) -> Optional[Profile]: ...  # noqa: E704

    async def roll_number_exists(self, roll_number: str) -> bool: ...  # noqa: E704

    async def upsert(self, profile: Profile) -> Profile: ...  # noqa: E704

    async def update(self, profile_id: str, fields: dict[str, Any]) -> Optional[Profile]: ...  # noqa: E704

    async def delete(self, profile_id: str) -> None: ...  # noqa: E704

    async def insert_parent_child_link(self, parent_id: str, child_id: str) -> None: ...  # noqa: E704


@runtime_checkable
class PendingSignupCache(Protocol):
    """Local durable key-value cache for signup forms awaiting a profile row."""

    async def get(self, key: str) -> Optional[PendingSignup]: ...  # noqa: E704

    async def set(self, key: str, value: PendingSignup) -> None: ...  # noqa: E704

    async def delete(self, key: str) -> None: ...  # noqa: E704
