"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase clients + SQLite)
- Logger reference
- Convenience properties for accessing clients
- A single wrapper that turns collaborator failures into typed store errors
"""

from __future__ import annotations

from typing import Awaitable, Callable, Type, TypeVar

from supabase import AsyncClient

from samvaad.database import DatabaseManager
from samvaad.errors import OfflineError, StoreError
from samvaad.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""
    ERROR_TYPE: Type[StoreError] = StoreError

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> AsyncClient:
        """Returns the anon-key Supabase client."""
        return self._db.supabase

    @property
    def supabase_admin(self) -> AsyncClient:
        """Returns the service-role Supabase client."""
        return self._db.supabase_admin

    async def _execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
    ) -> T:
        """Await *operation*, converting any failure into ``ERROR_TYPE``.

        ``StoreError`` subclasses raised inside the operation (including
        :class:`OfflineError` from the client properties) pass through
        unchanged.  Everything else is logged once and wrapped, keeping the
        original exception available as ``original_error``.

        Parameters
        ----------
        operation:
            Zero-argument coroutine factory performing the call.
        operation_name:
            Human-readable label for log messages, e.g.
            ``"get_by_id (users)"``.
        """
        try:
            return await operation()
        except OfflineError:
            self._logger.warning("Offline; %s skipped.", operation_name)
            raise
        except StoreError:
            raise
        except Exception as exc:
            self._logger.error("%s failed: %s", operation_name, exc)
            raise self.ERROR_TYPE(
                f"{operation_name} failed: {exc}", original_error=exc,
            ) from exc
