from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from samvaad.errors import IdentityProviderError, LocalCacheError, ProfileStoreError
from samvaad.models.auth_models import CachedSession, PendingSignup
from samvaad.models.enums import AuthEvent
from samvaad.models.identity import AuthSession, Identity
from samvaad.models.profile import Profile


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._t = float(start)

    def time(self) -> float:
        return self._t

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._t, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)


class _Collaborator:
    """Records calls, yields to the loop, and fails or blocks on demand."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def fail_on(self, op: str, exc: Exception) -> None:
        self.failures[op] = exc

    def block(self, op: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[op] = gate
        return gate

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    async def _enter(self, op: str, *args: Any) -> None:
        self.calls.append((op, args))
        await asyncio.sleep(0)
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        exc = self.failures.get(op)
        if exc is not None:
            raise exc


class FakeIdentityProvider(_Collaborator):
    def __init__(self, auto_confirm: bool = False) -> None:
        super().__init__()
        self.auto_confirm = auto_confirm
        self.identities: Dict[str, Identity] = {}
        self.passwords: Dict[str, Tuple[str, str]] = {}
        self.tokens: Dict[str, str] = {}
        self.current_session: Optional[AuthSession] = None
        self.refreshable: Dict[str, AuthSession] = {}
        self.handlers: List[Any] = []
        self.sent_emails: List[Tuple[str, str, str]] = []

    # --- test setup helpers ---

    def add_identity(self, email: str = "asha@example.com", password: str = "secret123", **metadata: Any) -> Identity:
        identity = Identity(id=str(uuid.uuid4()), email=email, user_metadata=metadata)
        self.identities[identity.id] = identity
        self.passwords[email] = (identity.id, password)
        return identity

    def session_for(self, identity: Identity) -> AuthSession:
        return AuthSession(
            access_token=f"access-{identity.id}",
            refresh_token=f"refresh-{identity.id}",
            expires_at=4_102_444_800,
            identity=identity,
        )

    def emit(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for handler in list(self.handlers):
            handler(event, session)

    # --- IdentityProvider ---

    async def create_account(self, email: str, password: str, metadata: dict[str, Any]):
        await self._enter("create_account", email)
        if email in self.passwords:
            raise IdentityProviderError(
                "create_account failed", original_error=Exception("User already registered"),
            )
        identity = self.add_identity(email, password, **metadata)
        session = self.session_for(identity) if self.auto_confirm else None
        if session is not None:
            self.current_session = session
        return identity, session

    async def authenticate(self, email: str, password: str) -> AuthSession:
        await self._enter("authenticate", email)
        entry = self.passwords.get(email)
        if entry is None or entry[1] != password:
            raise IdentityProviderError(
                "authenticate failed", original_error=Exception("Invalid login credentials"),
            )
        session = self.session_for(self.identities[entry[0]])
        self.current_session = session
        return session

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self.current_session = None

    async def get_current_session(self) -> Optional[AuthSession]:
        await self._enter("get_current_session")
        return self.current_session

    async def get_current_identity(self) -> Optional[Identity]:
        await self._enter("get_current_identity")
        if self.current_session is None:
            return None
        return self.identities.get(self.current_session.identity.id)

    async def get_identity_by_id(self, identity_id: str) -> Optional[Identity]:
        await self._enter("get_identity_by_id", identity_id)
        return self.identities.get(identity_id)

    async def get_identity_for_token(self, token: str) -> Optional[Identity]:
        await self._enter("get_identity_for_token", token)
        identity_id = self.tokens.get(token)
        return self.identities.get(identity_id) if identity_id else None

    async def delete_identity(self, identity_id: str) -> None:
        await self._enter("delete_identity", identity_id)
        identity = self.identities.pop(identity_id, None)
        if identity is not None:
            self.passwords.pop(identity.email, None)

    async def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        await self._enter("refresh_session", refresh_token)
        session = self.refreshable.get(refresh_token)
        if session is not None:
            self.current_session = session
        return session

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        await self._enter("send_password_reset", email)
        self.sent_emails.append(("reset", email, redirect_to))

    async def resend_confirmation(self, email: str, redirect_to: str) -> None:
        await self._enter("resend_confirmation", email)
        self.sent_emails.append(("confirm", email, redirect_to))

    async def update_password(self, password: str) -> None:
        await self._enter("update_password")
        if self.current_session is not None:
            email = self.current_session.identity.email
            self.passwords[email] = (self.current_session.identity.id, password)

    def subscribe(self, handler):
        self.handlers.append(handler)
        return lambda: self.handlers.remove(handler)


class FakeProfileStore(_Collaborator):
    def __init__(self) -> None:
        super().__init__()
        self.rows: Dict[str, Profile] = {}
        self.links: List[Tuple[str, str]] = []
        self.reserved_roll_numbers: set[str] = set()

    def put(self, profile: Profile) -> Profile:
        self.rows[profile.id] = profile
        return profile

    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        await self._enter("get_by_id", profile_id)
        return self.rows.get(profile_id)

    async def get_by_roll_number(self, roll_number: str) -> Optional[Profile]:
        await self._enter("get_by_roll_number", roll_number)
        for row in self.rows.values():
            if row.roll_number == roll_number:
                return row
        return None

    async def roll_number_exists(self, roll_number: str) -> bool:
        await self._enter("roll_number_exists", roll_number)
        if roll_number in self.reserved_roll_numbers:
            return True
        return any(row.roll_number == roll_number for row in self.rows.values())

    async def upsert(self, profile: Profile) -> Profile:
        await self._enter("upsert", profile.id)
        self.rows[profile.id] = profile
        return profile

    async def update(self, profile_id: str, fields: dict[str, Any]) -> Optional[Profile]:
        await self._enter("update", profile_id, fields)
        row = self.rows.get(profile_id)
        if row is None:
            return None
        updated = Profile(**{**row.model_dump(), **fields})
        self.rows[profile_id] = updated
        return updated

    async def delete(self, profile_id: str) -> None:
        await self._enter("delete", profile_id)
        self.rows.pop(profile_id, None)

    async def insert_parent_child_link(self, parent_id: str, child_id: str) -> None:
        await self._enter("insert_parent_child_link", parent_id, child_id)
        self.links.append((parent_id, child_id))


class FakePendingSignupCache(_Collaborator):
    def __init__(self) -> None:
        super().__init__()
        self.entries: Dict[str, PendingSignup] = {}

    async def get(self, key: str) -> Optional[PendingSignup]:
        await self._enter("get", key)
        return self.entries.get(key)

    async def set(self, key: str, value: PendingSignup) -> None:
        await self._enter("set", key)
        self.entries[key] = value

    async def delete(self, key: str) -> None:
        await self._enter("delete", key)
        self.entries.pop(key, None)


class FakeTokenCache:
    def __init__(self) -> None:
        self.cached: Optional[CachedSession] = None

    async def cache_session(self, user_id: str, email: str, refresh_token: str) -> bool:
        self.cached = CachedSession(
            user_id=user_id,
            email=email,
            refresh_token=refresh_token,
            cached_at=datetime.now(tz=timezone.utc).isoformat(),
        )
        return True

    async def load_cached_session(self) -> Optional[CachedSession]:
        return self.cached

    async def clear_session(self) -> None:
        self.cached = None


def store_error(message: str = "connection reset") -> ProfileStoreError:
    return ProfileStoreError(message, original_error=ConnectionError(message))


def cache_error(message: str = "disk I/O error") -> LocalCacheError:
    return LocalCacheError(message)
