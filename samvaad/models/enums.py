"""
Shared Enumerations for Samvaad Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so rows read back from the profile store compare naturally.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Account roles offered at signup."""

    DEAF = "deaf"
    PARENT = "parent"
    TEACHER = "teacher"


class DeafUserProficiency(StrEnum):
    """Self-reported sign-language proficiency of a deaf user."""

    COMPLETE_BEGINNER = "complete_beginner"
    KNOWS_HAND_SIGNS = "knows_hand_signs"
    FLUENT_IN_HAND_SIGNS = "fluent_in_hand_signs"
    PRACTICE_ONLY = "practice_only"


class DeafUserIssue(StrEnum):
    """Hearing-loss classification captured on the deaf signup form."""

    CONGENITAL = "congenital"
    ACQUIRED = "acquired"
    PARTIAL = "partial"
    TOTAL = "total"


class WatcherState(StrEnum):
    """Lifecycle of a single confirmation watcher session.

    ``CONFIRMED``, ``EXPIRED`` and ``STOPPED`` are terminal.  The only legal
    moves are ``IDLE -> WATCHING`` and
    ``WATCHING -> CONFIRMED | EXPIRED | STOPPED``.  ``STOPPED`` means the
    watch was torn down before either outcome and fires no callback.
    """

    IDLE = "IDLE"
    WATCHING = "WATCHING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    STOPPED = "STOPPED"


class ManualConfirmState(StrEnum):
    """Per-identity state of the manual confirmation override."""

    IDLE = "IDLE"
    CHECKING = "CHECKING"
    CONFIRMING = "CONFIRMING"
    DONE = "DONE"


class AuthEvent(StrEnum):
    """Identity-provider lifecycle events the session cache reacts to."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
