"""
Profile Repository.

Handles all profile data access against the Supabase ``users`` table.
Every lookup result passes through the profile normalizer, so callers
always receive a single ``Profile`` or ``None``.
"""

from __future__ import annotations

from typing import Any, Optional

from samvaad.database import DatabaseManager
from samvaad.errors import ProfileStoreError
from samvaad.logger import StructuredLogger
from samvaad.models.profile import Profile
from samvaad.repositories.base_repository import BaseRepository
from samvaad.utils.profile_normalizer import normalize_profile_result


class ProfileRepository(BaseRepository):
    """Data access layer for Profile rows."""

    TABLE = "users"
    LINK_TABLE = "parent_child_relationships"
    ERROR_TYPE = ProfileStoreError

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        table: Optional[str] = None,
        link_table: Optional[str] = None,
    ) -> None:
        super().__init__(db, logger)
        self._table: str = table or self.TABLE
        self._link_table: str = link_table or self.LINK_TABLE

    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key (== identity id)."""
        async def _op() -> Optional[Profile]:
            response = await (
                self.supabase.table(self._table)
                .select("*")
                .eq("id", profile_id)
                .limit(1)
                .execute()
            )
            record = normalize_profile_result(response)
            return Profile(**record) if record else None

        return await self._execute(_op, operation_name=f"get_by_id ({self._table})")

    async def get_by_roll_number(self, roll_number: str) -> Optional[Profile]:
        """Fetch a profile by its six-digit roll number."""
        async def _op() -> Optional[Profile]:
            response = await (
                self.supabase.table(self._table)
                .select("*")
                .eq("roll_number", roll_number)
                .limit(1)
                .execute()
            )
            record = normalize_profile_result(response)
            return Profile(**record) if record else None

        return await self._execute(
            _op, operation_name=f"get_by_roll_number ({self._table})",
        )

    async def roll_number_exists(self, roll_number: str) -> bool:
        """``True`` when any profile already uses *roll_number*."""
        async def _op() -> bool:
            response = await (
                self.supabase.table(self._table)
                .select("id")
                .eq("roll_number", roll_number)
                .limit(1)
                .execute()
            )
            return bool(response.data)

        return await self._execute(
            _op, operation_name=f"roll_number_exists ({self._table})",
        )

    async def upsert(self, profile: Profile) -> Profile:
        """Insert or replace a profile keyed by ``id``.

        A duplicate-key conflict resolves by overwrite, which makes repeated
        reconciliation of the same identity idempotent.
        """
        async def _op() -> Profile:
            response = await (
                self.supabase.table(self._table)
                .upsert(profile.to_row(), on_conflict="id")
                .execute()
            )
            record = normalize_profile_result(response)
            # RLS policies may hide the written row from the returning select.
            result = Profile(**record) if record else profile
            self._logger.info("Profile upserted: %s", result.id)
            return result

        return await self._execute(_op, operation_name=f"upsert ({self._table})")

    async def update(self, profile_id: str, fields: dict[str, Any]) -> Optional[Profile]:
        """Apply a partial update.  Returns the updated row, or ``None`` if absent."""
        async def _op() -> Optional[Profile]:
            response = await (
                self.supabase.table(self._table)
                .update(fields)
                .eq("id", profile_id)
                .execute()
            )
            record = normalize_profile_result(response)
            return Profile(**record) if record else None

        return await self._execute(_op, operation_name=f"update ({self._table})")

    async def delete(self, profile_id: str) -> None:
        """Hard-delete a profile row.  Deleting an absent row is a no-op."""
        async def _op() -> None:
            await (
                self.supabase.table(self._table)
                .delete()
                .eq("id", profile_id)
                .execute()
            )
            self._logger.info("Profile deleted: %s", profile_id)

        await self._execute(_op, operation_name=f"delete ({self._table})")

    async def insert_parent_child_link(self, parent_id: str, child_id: str) -> None:
        """Record a parent/child relationship."""
        async def _op() -> None:
            await (
                self.supabase.table(self._link_table)
                .insert({"parent_id": parent_id, "child_id": child_id})
                .execute()
            )

        await self._execute(
            _op, operation_name=f"insert_parent_child_link ({self._link_table})",
        )
