"""Shared utility functions and models for the Samvaad account engine.

Convenience re-exports so consumers can import directly from
``samvaad.utils`` (e.g. ``from samvaad.utils import utc_now``).
"""

from samvaad.utils.audit import AuditEvent, log_audit_event
from samvaad.utils.profile_normalizer import normalize_profile_result
from samvaad.utils.timestamps import parse_timestamp, utc_now

__all__ = [
    "AuditEvent",
    "log_audit_event",
    "normalize_profile_result",
    "parse_timestamp",
    "utc_now",
]
