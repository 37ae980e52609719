"""
Repository Layer.

Data access for the Supabase-backed collaborators.  Each repository
receives a ``DatabaseManager`` and a ``StructuredLogger`` through its
constructor and converts collaborator failures into typed store errors.

Usage::

    from samvaad.repositories import ProfileRepository, SupabaseIdentityProvider

    profiles = ProfileRepository(db=db, logger=logger)
    identities = SupabaseIdentityProvider(db=db, logger=logger)
"""

from samvaad.repositories.base_repository import BaseRepository
from samvaad.repositories.identity_repository import SupabaseIdentityProvider
from samvaad.repositories.profile_repository import ProfileRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "SupabaseIdentityProvider",
]
