from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for convenient imports:
    from samvaad.models import Profile, Identity, ConfirmationStatus
    from samvaad.models import UserRole, WatcherState
"""

from samvaad.models.enums import (
    AuthEvent,
    DeafUserIssue,
    DeafUserProficiency,
    ManualConfirmState,
    UserRole,
    WatcherState,
)
from samvaad.models.identity import AuthSession, Identity
from samvaad.models.profile import Profile, ProfileUpdate
from samvaad.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    CachedSession,
    ConfirmationStatus,
    ManualConfirmResult,
    Notification,
    PendingSignup,
    SignupData,
    ValidationResult,
)
from samvaad.models.service_models import ServiceResult

__all__ = [
    "AuthErrorCode",
    "AuthEvent",
    "AuthResult",
    "AuthSession",
    "CachedSession",
    "ConfirmationStatus",
    "DeafUserIssue",
    "DeafUserProficiency",
    "Identity",
    "ManualConfirmResult",
    "ManualConfirmState",
    "Notification",
    "PendingSignup",
    "Profile",
    "ProfileUpdate",
    "ServiceResult",
    "SignupData",
    "UserRole",
    "ValidationResult",
    "WatcherState",
]
