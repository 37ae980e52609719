"""
Confirmation Tracker.

Classifies an account as confirmed, pending or expired from the profile
row, the identity record and the current time.  Expired accounts are
handed to the :class:`ExpiryReaper` before the answer is returned.

The tracker holds no locks and keeps no state between calls; callers
serialize.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from samvaad.errors import StoreError
from samvaad.interfaces import IdentityProvider, ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.auth_models import ConfirmationStatus
from samvaad.models.profile import Profile
from samvaad.services.base_service import BaseService
from samvaad.services.expiry_reaper import ExpiryReaper
from samvaad.utils.timestamps import utc_now


def classify_confirmation(
    profile: Profile,
    now: datetime,
    window: timedelta,
    grace: timedelta,
) -> ConfirmationStatus:
    """Classify an existing profile at time *now*.

    A missing ``confirmation_sent_at`` is read as ``now - grace``.  The
    account is expired once strictly more than *window* has elapsed.
    """
    if profile.email_confirmed:
        return ConfirmationStatus(confirmed=True, expired=False)

    sent_at = profile.confirmation_sent_at or (now - grace)
    elapsed = now - sent_at
    if elapsed > window:
        return ConfirmationStatus(confirmed=False, expired=True)

    remaining = (window - elapsed).total_seconds()
    return ConfirmationStatus(
        confirmed=False,
        expired=False,
        minutes_left=math.floor(remaining / 60),
    )


class ConfirmationTracker(BaseService):
    """Answers "is this account confirmed, pending or expired?"."""

    def __init__(
        self,
        store: ProfileStore,
        identities: IdentityProvider,
        reaper: ExpiryReaper,
        logger: StructuredLogger,
        window_s: int = 600,
        grace_s: int = 300,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._identities = identities
        self._reaper = reaper
        self._window = timedelta(seconds=window_s)
        self._grace = timedelta(seconds=grace_s)

    @property
    def window(self) -> timedelta:
        return self._window

    async def check_status(
        self, identity_id: str, now: Optional[datetime] = None,
    ) -> ConfirmationStatus:
        """Return the confirmation status of *identity_id*.

        Raises:
            StoreError: If the profile store or identity provider fails.
                Absence is never an error.
        """
        now = now or utc_now()
        profile = await self._store.get_by_id(identity_id)

        if profile is None:
            identity = await self._identities.get_identity_by_id(identity_id)
            if identity is None:
                return ConfirmationStatus(confirmed=False, expired=True)
            return ConfirmationStatus(
                confirmed=False,
                expired=False,
                minutes_left=math.floor(self._window.total_seconds() / 60),
                needs_profile_creation=True,
            )

        if profile.confirmation_sent_at is None and not profile.email_confirmed:
            self._logger.warning(
                "Profile %s has no usable confirmation_sent_at; assuming %ds ago",
                identity_id,
                int(self._grace.total_seconds()),
            )

        status = classify_confirmation(profile, now, self._window, self._grace)
        if status.expired:
            await self._reap_best_effort(identity_id)
        return status

    async def _reap_best_effort(self, identity_id: str) -> None:
        self._logger.info("Confirmation window elapsed for %s; reaping", identity_id)
        try:
            if not await self._reaper.reap(identity_id):
                self._logger.warning("Reap of %s did not complete", identity_id)
        except StoreError as exc:
            self._logger.error("Reap of %s failed: %s", identity_id, exc)
