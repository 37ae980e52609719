"""
Expiry Reaper.

Deletes an account whose email confirmation window has lapsed: first the
profile row, then the identity record (admin API).

The two deletions are not transactional.  If the profile is removed but
the identity deletion fails, an orphaned identity remains; this is
logged with ``event=REAP_PARTIAL`` and an audit record so a cleanup pass
can find it.  Nothing is rolled back or retried.
"""

from __future__ import annotations

from samvaad.errors import StoreError
from samvaad.interfaces import IdentityProvider, ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.services.base_service import BaseService
from samvaad.utils.audit import log_audit_event


class ExpiryReaper(BaseService):
    """Removes unconfirmed accounts past their confirmation window."""

    def __init__(
        self,
        store: ProfileStore,
        identities: IdentityProvider,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._identities = identities

    async def reap(self, identity_id: str) -> bool:
        """Delete profile and identity.

        Returns ``True`` only when both deletions succeed.  A confirmed
        profile is never deleted (returns ``False``).
        """
        try:
            profile = await self._store.get_by_id(identity_id)
        except StoreError as exc:
            self._logger.error("Reap aborted for %s, profile read failed: %s", identity_id, exc)
            return False

        if profile is not None and profile.email_confirmed:
            self._logger.warning("Refusing to reap confirmed account %s", identity_id)
            return False

        try:
            await self._store.delete(identity_id)
        except StoreError as exc:
            self._logger.error("Reap failed for %s, profile not deleted: %s", identity_id, exc)
            return False

        try:
            await self._identities.delete_identity(identity_id)
        except StoreError as exc:
            self._logger.error(
                "Profile deleted but identity deletion failed for %s: %s",
                identity_id,
                exc,
                extra={"event": "REAP_PARTIAL", "identity_id": identity_id},
            )
            log_audit_event(
                logger=self._logger,
                action="REAP_PARTIAL",
                entity_type="Identity",
                entity_id=identity_id,
                user_id="system",
                details={"error": str(exc)},
            )
            return False

        log_audit_event(
            logger=self._logger,
            action="REAP",
            entity_type="Identity",
            entity_id=identity_id,
            user_id="system",
            details={"had_profile": profile is not None},
        )
        return True
