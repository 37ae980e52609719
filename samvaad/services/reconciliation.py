"""
Profile Reconciliation Service.

Guarantees that an authenticated identity has a profile row.  Invoked on
every session-establish event (restore at startup, sign-in, provider
``SIGNED_IN`` / ``USER_UPDATED``).

Reconciliation strategy:
    - An existing profile is returned untouched.
    - A missing profile is synthesized from identity metadata, merged
      with the locally cached pending-signup payload when one exists, and
      upserted keyed by identity id (repeat runs overwrite, so the
      operation is idempotent).
    - The pending payload is deleted once the profile is durable.
    - Reconciliation never fails the session flow: errors are logged and
      ``None`` is returned.

The same derivation (:meth:`build_profile`) serves the manual
confirmation override, with ``confirmed=True``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from samvaad.errors import StoreError
from samvaad.interfaces import PendingSignupCache, ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import PendingSignup
from samvaad.models.enums import UserRole
from samvaad.models.identity import Identity
from samvaad.models.profile import Profile, is_valid_roll_number
from samvaad.services.base_service import BaseService
from samvaad.services.roll_number import RollNumberAllocator
from samvaad.utils.audit import log_audit_event
from samvaad.utils.timestamps import utc_now


class ProfileReconciliationService(BaseService):
    """Backfills missing profile rows from identity metadata."""

    def __init__(
        self,
        store: ProfileStore,
        pending_cache: PendingSignupCache,
        allocator: RollNumberAllocator,
        logger: StructuredLogger,
        default_role: UserRole = UserRole.DEAF,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._pending_cache = pending_cache
        self._allocator = allocator
        self._default_role = default_role

    async def ensure_profile(self, identity: Identity) -> Optional[Profile]:
        """Return the profile for *identity*, creating it when missing.

        Returns ``None`` (after logging) when any collaborator fails.
        """
        try:
            existing = await self._store.get_by_id(identity.id)
            if existing is not None:
                return existing
            return await self._provision(identity)
        except Exception as exc:
            self._logger.error(
                "Reconciliation failed for %s; continuing without profile: %s",
                identity.id,
                exc,
                exc_info=True,
            )
            return None

    async def build_profile(
        self,
        identity: Identity,
        pending: Optional[PendingSignup],
        *,
        confirmed: bool,
        now: Optional[datetime] = None,
    ) -> Profile:
        """Derive a profile from identity metadata and an optional pending payload.

        Pending-payload values win over metadata.  A roll number carried in
        the metadata is kept when it is well-formed and unused; otherwise a
        fresh one is allocated.
        """
        now = now or utc_now()
        metadata: dict[str, Any] = identity.user_metadata

        name: str = identity.display_name
        role: UserRole = self._coerce_role(metadata.get("role"))
        extra: dict[str, Any] = {}
        if pending is not None:
            name = pending.name or name
            role = pending.role
            extra = pending.role_specific_fields()

        roll_number = metadata.get("roll_number") or metadata.get("rollNumber")
        if isinstance(roll_number, int) and not isinstance(roll_number, bool):
            roll_number = str(roll_number)
        if not (is_valid_roll_number(roll_number) and await self._allocator.is_available(roll_number)):
            roll_number = await self._allocator.allocate()

        return Profile(
            id=identity.id,
            email=identity.email or (pending.email if pending else ""),
            name=name,
            role=role,
            roll_number=roll_number,
            email_confirmed=confirmed,
            confirmation_sent_at=now,
            email_confirmed_at=now if confirmed else None,
            created_at=now,
            updated_at=now,
            **extra,
        )

    async def load_pending(self, identity_id: str) -> Optional[PendingSignup]:
        try:
            return await self._pending_cache.get(identity_id)
        except StoreError as exc:
            self._logger.warning(
                "Pending signup unavailable for %s, using metadata only: %s",
                identity_id,
                exc,
            )
            return None

    async def discard_pending(self, identity_id: str) -> None:
        """Delete the pending payload.  A failure leaves a stale entry only."""
        try:
            await self._pending_cache.delete(identity_id)
        except StoreError as exc:
            self._logger.warning(
                "Could not delete pending signup for %s: %s", identity_id, exc,
            )

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _provision(self, identity: Identity) -> Profile:
        pending = await self.load_pending(identity.id)
        profile = await self.build_profile(identity, pending, confirmed=False)

        self._logger.info(
            "Reconciliation: creating missing profile for %s (roll %s)",
            identity.id,
            profile.roll_number,
        )

        try:
            created = await self._store.upsert(profile)
        except StoreError as exc:
            # Another trigger may have created the row concurrently.
            self._logger.warning(
                "Reconciliation: upsert failed for %s, retrying lookup: %s",
                identity.id,
                exc,
            )
            retried = await self._store.get_by_id(identity.id)
            if retried is None:
                raise
            await self.discard_pending(identity.id)
            return retried

        await self.discard_pending(identity.id)

        log_audit_event(
            logger=self._logger,
            action="PROFILE_CREATE",
            entity_type="Profile",
            entity_id=identity.id,
            user_id=identity.id,
            details={
                "role": str(created.role),
                "roll_number": created.roll_number,
                "from_pending": pending is not None,
            },
        )
        return created

    def _coerce_role(self, value: Any) -> UserRole:
        try:
            return UserRole(value)
        except ValueError:
            return self._default_role
