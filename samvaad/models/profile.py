"""
Profile Model.

Pydantic model for the application-owned ``users`` row that sits beside
every identity-provider account.  Column names are snake_case, matching
the table; role-specific attributes are optional because only the fields
of the signup form that matches the user's role are filled in.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from samvaad.models.enums import DeafUserIssue, DeafUserProficiency, UserRole
from samvaad.utils.timestamps import parse_timestamp

ROLL_NUMBER_MIN: int = 100000
ROLL_NUMBER_MAX: int = 999999
_ROLL_NUMBER_RE: re.Pattern[str] = re.compile(r"^[1-9]\d{5}$")

# Fields copied from a pending-signup payload into a synthesized profile.
ROLE_SPECIFIC_FIELDS: tuple[str, ...] = (
    "age",
    "proficiency",
    "issues",
    "illness_stage",
    "child_roll_number",
    "relationship",
    "purpose",
    "subjects",
    "teaching_purpose",
)


def is_valid_roll_number(value: object) -> bool:
    """``True`` when *value* is a six-digit string in ``[100000, 999999]``."""
    return isinstance(value, str) and bool(_ROLL_NUMBER_RE.match(value))


class Profile(BaseModel):
    """Represents a profile row.

    ``confirmation_sent_at`` and ``email_confirmed_at`` tolerate garbage
    in the store: an unparsable value is read as ``None`` and the
    confirmation tracker applies its grace default.
    """

    id: str  # == identity id
    email: str
    name: str
    role: UserRole = UserRole.DEAF
    roll_number: str
    age: Optional[int] = None

    email_confirmed: bool = False
    confirmation_sent_at: Optional[datetime] = None
    email_confirmed_at: Optional[datetime] = None

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

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator(
        "confirmation_sent_at", "email_confirmed_at", "created_at", "updated_at",
        mode="before",
    )
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("roll_number", "child_roll_number", mode="before")
    @classmethod
    def _stringify_roll_number(cls, value: Any) -> Any:
        # Older rows store the roll number as an integer column.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_row(self) -> dict[str, Any]:
        """Serialise for the profile store (JSON-safe, ``None`` omitted)."""
        return self.model_dump(mode="json", exclude_none=True)


class ProfileUpdate(BaseModel):
    """Editable subset of a profile.  Only fields explicitly set are written."""

    name: Optional[str] = Field(default=None, min_length=1)
    age: Optional[int] = Field(default=None, ge=0, le=150)
    proficiency: Optional[DeafUserProficiency] = None
    issues: Optional[list[DeafUserIssue]] = None
    illness_stage: Optional[str] = None
    child_roll_number: Optional[str] = None
    relationship: Optional[str] = None
    purpose: Optional[str] = None
    subjects: Optional[list[str]] = None
    teaching_purpose: Optional[str] = None

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)
