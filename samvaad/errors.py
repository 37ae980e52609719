"""
Error Taxonomy.

Absence of a record is never an error in this code base: lookups return
``None``.  The exceptions below represent genuine failures of a
collaborator (network, provider or store) and propagate to the immediate
caller, which decides whether to surface a notification.
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """A collaborator call failed.  Retryable by the caller, never retried here."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class ProfileStoreError(StoreError):
    """The profile store rejected or failed a query."""


class IdentityProviderError(StoreError):
    """The identity provider rejected or failed a call."""


class LocalCacheError(StoreError):
    """The local durable cache could not be read or written."""


class OfflineError(StoreError):
    """Supabase credentials are not configured."""
