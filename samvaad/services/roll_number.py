"""
Roll-Number Allocator.

Draws six-digit roll numbers uniformly from ``[100000, 999999]`` and
checks each draw against the profile store until an unused one is found.

Uniqueness is only checked, not reserved: two concurrent allocations can
in principle draw the same unused number.  The ``users`` table's unique
constraint on ``roll_number`` is the final arbiter.
"""

from __future__ import annotations

import random
from typing import Optional

from samvaad.errors import StoreError
from samvaad.interfaces import ProfileStore
from samvaad.logger import StructuredLogger
from samvaad.models.profile import ROLL_NUMBER_MAX, ROLL_NUMBER_MIN
from samvaad.services.base_service import BaseService


class RollNumberAllocator(BaseService):
    """Allocates unique roll numbers."""

    def __init__(
        self,
        store: ProfileStore,
        logger: StructuredLogger,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(logger)
        self._store = store
        self._rng: random.Random = rng or random.Random()

    async def allocate(self) -> str:
        """Return a roll number no existing profile uses.

        A store error during the existence check counts as "taken" and
        triggers another draw.  There is no retry limit.
        """
        attempts = 0
        while True:
            attempts += 1
            candidate = str(self._rng.randint(ROLL_NUMBER_MIN, ROLL_NUMBER_MAX))
            try:
                taken = await self._store.roll_number_exists(candidate)
            except StoreError as exc:
                self._logger.warning(
                    "Roll number check failed for %s, drawing again: %s",
                    candidate,
                    exc,
                )
                continue
            if not taken:
                if attempts > 1:
                    self._logger.debug("Roll number allocated after %d draws", attempts)
                return candidate

    async def is_available(self, roll_number: str) -> bool:
        """``True`` when *roll_number* is verifiably unused."""
        try:
            return not await self._store.roll_number_exists(roll_number)
        except StoreError:
            return False
