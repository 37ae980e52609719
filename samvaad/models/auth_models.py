"""
Authentication Pipeline Models.

Pydantic models and enumerations for the request/response contracts
between the account services and the presentation layer.

Every auth operation returns a structured, inspectable result rather
than raw strings or exception side-channels.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr

from samvaad.models.enums import DeafUserIssue, DeafUserProficiency, UserRole
from samvaad.models.identity import AuthSession, Identity
from samvaad.models.profile import ROLE_SPECIFIC_FIELDS, Profile
from samvaad.utils.timestamps import utc_now


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of authentication error categories."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    CONFIRMATION_IN_PROGRESS = "confirmation_in_progress"
    SESSION_EXPIRED = "session_expired"
    UNKNOWN_ERROR = "unknown_error"


# ---------------------------------------------------------------------------
# Supabase error-code mapping
# ---------------------------------------------------------------------------

SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "email_not_confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "email not confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "user already registered": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "over_email_send_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many emails requested. Please wait a moment and try again.",
    ),
    "over_request_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many requests. Please wait a moment and try again.",
    ),
}


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Signup form and the locally cached pending-signup payload
# ---------------------------------------------------------------------------

class SignupData(BaseModel):
    """The signup form as submitted by the presentation layer."""

    email: str
    password: SecretStr
    name: str
    role: UserRole = UserRole.DEAF
    age: Optional[int] = Field(default=None, ge=0, le=150)

    # Deaf users
    proficiency: Optional[DeafUserProficiency] = None
    issues: Optional[list[DeafUserIssue]] = None
    illness_stage: Optional[str] = None

    # Parent users
    child_roll_number: Optional[str] = None
    relationship: Optional[str] = None
    purpose: Optional[str] = None

    # Teacher users
    subjects: Optional[list[str]] = None
    teaching_purpose: Optional[str] = None

    def to_pending(self, identity_id: str) -> "PendingSignup":
        """Build the cacheable payload.  The password is never included."""
        return PendingSignup(
            identity_id=identity_id,
            **self.model_dump(mode="json", exclude={"password"}),
        )


class PendingSignup(BaseModel):
    """Signup form data awaiting durable profile creation.

    Held in the local encrypted cache keyed by identity id and deleted as
    soon as the profile row exists.
    """

    identity_id: str
    email: str
    name: str
    role: UserRole = UserRole.DEAF
    age: Optional[int] = None
    proficiency: Optional[DeafUserProficiency] = None
    issues: Optional[list[DeafUserIssue]] = None
    illness_stage: Optional[str] = None
    child_roll_number: Optional[str] = None
    relationship: Optional[str] = None
    purpose: Optional[str] = None
    subjects: Optional[list[str]] = None
    teaching_purpose: Optional[str] = None
    cached_at: datetime = Field(default_factory=utc_now)

    def role_specific_fields(self) -> dict[str, Any]:
        """Non-empty role-specific attributes, ready to merge into a profile."""
        dumped = self.model_dump(mode="json", include=set(ROLE_SPECIFIC_FIELDS))
        return {key: value for key, value in dumped.items() if value is not None}


# ---------------------------------------------------------------------------
# Confirmation lifecycle results
# ---------------------------------------------------------------------------

class ConfirmationStatus(BaseModel):
    """Answer of the confirmation tracker.

    ``minutes_left`` is only present while the account is pending;
    ``needs_profile_creation`` only when the identity exists without a
    profile row.
    """

    confirmed: bool
    expired: bool
    minutes_left: Optional[int] = None
    needs_profile_creation: Optional[bool] = None

    model_config = {"frozen": True}


class ManualConfirmResult(BaseModel):
    """Outcome of a manual confirmation override."""

    success: bool
    identity: Optional[Identity] = None
    profile: Optional[Profile] = None
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for signup, sign-in and account operations.

    The presentation layer inspects ``success`` to decide the happy path
    vs. error path and uses ``error_code`` to conditionally show extra
    controls (e.g. "resend confirmation").
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    identity: Optional[Identity] = None
    profile: Optional[Profile] = None
    session: Optional[AuthSession] = None
    roll_number: Optional[str] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Session cache models
# ---------------------------------------------------------------------------

class Notification(BaseModel):
    """A transient, dismissible message for the presentation layer."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    message: str
    level: str = "error"
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class CachedSession(BaseModel):
    """Decrypted session-token payload.

    Only the refresh token is retained; no password or password hash is
    ever cached.
    """

    user_id: str
    email: str
    refresh_token: str
    cached_at: str  # ISO-8601 UTC
