"""Timestamp helpers shared by the models and the confirmation tracker."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

__all__ = ["parse_timestamp", "utc_now"]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, int, float, None]) -> Optional[datetime]:
    """Best-effort conversion of a stored timestamp to an aware UTC datetime.

    Accepts ISO-8601 strings (including the trailing ``Z`` PostgREST
    emits), ``datetime`` objects and Unix epoch seconds.  Naive values are
    interpreted as UTC.  Anything unparsable yields ``None`` so callers can
    apply their own default instead of failing.
    """
    if value is None or isinstance(value, bool):
        return None

    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
