"""
Manual Confirmation Override.

Marks an account as confirmed on the user's request ("I've confirmed my
email"), bypassing the confirmation window.  When the profile row is
missing it is synthesized the same way reconciliation does, with
``email_confirmed`` forced to ``True``.

Re-entrancy is guarded per identity id by a small state machine::

    IDLE ──► CHECKING ──► CONFIRMING ──► DONE
      ▲          │             │           │
      └──────────┴─────────────┴───────────┘   (call returns)

The IDLE → CHECKING transition happens before the first ``await``, so a
second call for the same id that arrives while the first is in flight is
rejected instead of racing it.  Only in-flight ids are tracked; the entry
is dropped when the call returns, and a later call is idempotent because
an already-confirmed profile is left untouched.
"""

from __future__ import annotations

from typing import Optional

from samvaad.errors import StoreError
from samvaad.interfaces import IdentityProvider, ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import AuthErrorCode, ManualConfirmResult
from samvaad.models.enums import ManualConfirmState
from samvaad.models.identity import Identity
from samvaad.models.profile import Profile
from samvaad.services.base_service import BaseService
from samvaad.services.reconciliation import ProfileReconciliationService
from samvaad.utils.audit import log_audit_event
from samvaad.utils.timestamps import utc_now

_IN_FLIGHT: frozenset[ManualConfirmState] = frozenset({
    ManualConfirmState.CHECKING,
    ManualConfirmState.CONFIRMING,
})


class ManualConfirmationService(BaseService):
    """Confirms an account immediately, idempotently."""

    def __init__(
        self,
        store: ProfileStore,
        identities: IdentityProvider,
        reconciliation: ProfileReconciliationService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._identities = identities
        self._reconciliation = reconciliation
        self._states: dict[str, ManualConfirmState] = {}

    def state_of(self, identity_id: str) -> ManualConfirmState:
        return self._states.get(identity_id, ManualConfirmState.IDLE)

    async def manual_confirm(self, identity_id: str) -> ManualConfirmResult:
        """Confirm *identity_id*.

        Returns a failed result (never raises) when a confirmation for the
        same id is already in flight, the account no longer exists, or a
        collaborator fails.
        """
        if self.state_of(identity_id) in _IN_FLIGHT:
            return ManualConfirmResult(
                success=False,
                error_code=AuthErrorCode.CONFIRMATION_IN_PROGRESS,
                error_message="A confirmation for this account is already in progress.",
            )
        self._states[identity_id] = ManualConfirmState.CHECKING

        try:
            identity = await self._identities.get_identity_by_id(identity_id)
            if identity is None:
                return ManualConfirmResult(
                    success=False,
                    error_code=AuthErrorCode.NOT_FOUND,
                    error_message="This account no longer exists. Please sign up again.",
                )
            profile = await self._store.get_by_id(identity_id)

            self._states[identity_id] = ManualConfirmState.CONFIRMING
            confirmed = await self._confirm(identity, profile)
            self._states[identity_id] = ManualConfirmState.DONE
            return ManualConfirmResult(success=True, identity=identity, profile=confirmed)
        except StoreError as exc:
            self._logger.error("Manual confirmation failed for %s: %s", identity_id, exc)
            return ManualConfirmResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="Could not confirm your account. Please try again.",
            )
        finally:
            self._states.pop(identity_id, None)

    async def _confirm(self, identity: Identity, profile: Optional[Profile]) -> Profile:
        now = utc_now()

        if profile is not None and profile.email_confirmed:
            return profile

        if profile is not None:
            fields = {
                "email_confirmed": True,
                "email_confirmed_at": now.isoformat(),
                "updated_at": now.isoformat(),
            }
            updated = await self._store.update(identity.id, fields)
            result = updated or profile.model_copy(update={
                "email_confirmed": True,
                "email_confirmed_at": now,
                "updated_at": now,
            })
            created = False
        else:
            pending = await self._reconciliation.load_pending(identity.id)
            synthesized = await self._reconciliation.build_profile(
                identity, pending, confirmed=True, now=now,
            )
            result = await self._store.upsert(synthesized)
            await self._reconciliation.discard_pending(identity.id)
            created = True

        log_audit_event(
            logger=self._logger,
            action="EMAIL_CONFIRM",
            entity_type="Profile",
            entity_id=identity.id,
            user_id=identity.id,
            details={"source": "manual", "profile_created": created},
        )
        return result
