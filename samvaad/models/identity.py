"""
Identity Models.

Provider-agnostic views of the identity provider's account and session
objects.  The Supabase-backed provider converts gotrue ``User`` /
``Session`` objects into these models at the boundary so that no service
depends on gotrue types.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Represents an identity-provider account.

    ``user_metadata`` carries the values supplied at signup
    (``name``, ``role``, ``roll_number``) and is the seed for profile
    reconciliation when the profile row is missing.
    """

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    email_confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        """Metadata name, falling back to the local part of the email."""
        name = self.user_metadata.get("name") or self.user_metadata.get("full_name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return self.email.split("@")[0] if self.email else ""


class AuthSession(BaseModel):
    """An authenticated session handle."""

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None
    identity: Identity

    model_config = {"from_attributes": True}
