"""
Structured Audit Logging Utility.

Every account lifecycle state change (profile created, email confirmed,
account reaped) is logged as a structured JSON object.  Provides a
Pydantic-validated model and a single function for consistent audit
trail entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from samvaad.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Scalar type permitted inside the ``details`` mapping.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"PROFILE_CREATE"``,
            ``"EMAIL_CONFIRM"``, ``"REAP"``).
        entity_type: Type of entity affected (``"Profile"``,
            ``"Identity"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the account the action was performed for, or
            ``"system"`` for background actions.
        details: Optional additional context.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))
    return event
