"""
Profile Service.

Profile edits, parent/child linking and roll-number lookup.  Writes go
through the profile store; the shared session state is refreshed when
the signed-in user's own profile changes.
"""

from __future__ import annotations

from typing import Optional

from samvaad.auth import SessionManager
from samvaad.errors import StoreError
from samvaad.interfaces import ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.enums import UserRole
from samvaad.models.profile import Profile, ProfileUpdate, is_valid_roll_number
from samvaad.models.service_models import ServiceResult
from samvaad.services.base_service import BaseService
from samvaad.utils.audit import log_audit_event
from samvaad.utils.timestamps import utc_now


class ProfileService(BaseService):
    """Service layer for profile operations."""

    def __init__(
        self,
        store: ProfileStore,
        session: SessionManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._session = session

    async def update_profile(
        self, identity_id: str, update: ProfileUpdate,
    ) -> ServiceResult[Profile]:
        """Apply the explicitly set fields of *update* and stamp ``updated_at``."""
        fields = update.to_fields()
        if not fields:
            return ServiceResult(success=False, error="Nothing to update.", status_code=400)
        fields["updated_at"] = utc_now().isoformat()

        try:
            profile: Optional[Profile] = await self._store.update(identity_id, fields)
        except StoreError as exc:
            self._logger.error("Failed to update profile %s: %s", identity_id, exc)
            return ServiceResult(
                success=False, error="Could not save your profile.", status_code=503,
            )

        if profile is None:
            return ServiceResult(success=False, error="Profile not found.", status_code=404)

        self._sync_session(profile)
        log_audit_event(
            logger=self._logger,
            action="PROFILE_UPDATE",
            entity_type="Profile",
            entity_id=identity_id,
            user_id=identity_id,
            details={"fields": ",".join(sorted(k for k in fields if k != "updated_at"))},
        )
        return ServiceResult(success=True, data=profile)

    async def connect_parent_child(
        self, parent_id: str, child_roll_number: str,
    ) -> ServiceResult[Profile]:
        """Link a parent to the deaf child holding *child_roll_number*.

        Returns the updated parent profile.
        """
        if not is_valid_roll_number(child_roll_number):
            return ServiceResult(
                success=False,
                error="Roll numbers are six digits.",
                status_code=400,
            )

        try:
            parent = await self._store.get_by_id(parent_id)
            if parent is None:
                return ServiceResult(success=False, error="Parent not found.", status_code=404)
            if parent.role is not UserRole.PARENT:
                return ServiceResult(
                    success=False,
                    error="Only parent accounts can link a child.",
                    status_code=403,
                )

            child = await self._store.get_by_roll_number(child_roll_number)
            if child is None or child.role is not UserRole.DEAF:
                return ServiceResult(
                    success=False,
                    error="Child not found with this roll number.",
                    status_code=404,
                )

            await self._store.insert_parent_child_link(parent_id, child.id)
            updated = await self._store.update(parent_id, {
                "child_roll_number": child_roll_number,
                "updated_at": utc_now().isoformat(),
            })
        except StoreError as exc:
            self._logger.error(
                "Failed to link parent %s to child %s: %s", parent_id, child_roll_number, exc,
            )
            return ServiceResult(
                success=False, error="Could not link accounts. Please try again.", status_code=503,
            )

        parent = updated or parent.model_copy(update={"child_roll_number": child_roll_number})
        self._sync_session(parent)
        log_audit_event(
            logger=self._logger,
            action="PARENT_CHILD_LINK",
            entity_type="Profile",
            entity_id=parent_id,
            user_id=parent_id,
            details={"child_id": child.id},
        )
        return ServiceResult(success=True, data=parent)

    async def get_user_by_roll_number(self, roll_number: str) -> ServiceResult[Profile]:
        if not is_valid_roll_number(roll_number):
            return ServiceResult(success=False, error="Roll numbers are six digits.", status_code=400)
        try:
            profile = await self._store.get_by_roll_number(roll_number)
        except StoreError as exc:
            self._logger.error("Roll number lookup failed for %s: %s", roll_number, exc)
            return ServiceResult(success=False, error="Lookup failed.", status_code=503)
        if profile is None:
            return ServiceResult(success=False, error="No user with this roll number.", status_code=404)
        return ServiceResult(success=True, data=profile)

    def _sync_session(self, profile: Profile) -> None:
        snapshot = self._session.snapshot
        if snapshot.identity is not None and snapshot.identity.id == profile.id:
            self._session.set_profile(profile)
