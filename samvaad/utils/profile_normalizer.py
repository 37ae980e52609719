"""
Profile Normalizer.

PostgREST answers a profile lookup in several shapes depending on how the
query was built and which client version is installed: a bare dict from
``maybe_single()``, a one-element list from a plain ``select``, ``None``
(or a response whose ``data`` is ``None``) when nothing matched.  The
repository boundary funnels every answer through
:func:`normalize_profile_result` so that no caller re-implements this.
"""

from __future__ import annotations

from typing import Any, Optional

__all__ = ["normalize_profile_result"]


def normalize_profile_result(result: Any) -> Optional[dict[str, Any]]:
    """Collapse a lookup result into a single record dict or ``None``.

    Accepts an ``APIResponse``-like object (anything with a ``data``
    attribute), a dict, or a sequence of dicts.  A sequence with more than
    one element is ambiguous for a primary-key lookup and raises
    ``ValueError`` rather than silently picking one.
    """
    if result is None:
        return None

    data = getattr(result, "data", result)

    if data is None:
        return None
    if isinstance(data, dict):
        return dict(data) if data else None
    if isinstance(data, (list, tuple)):
        if not data:
            return None
        if len(data) > 1:
            raise ValueError(
                f"Expected at most one profile record, got {len(data)}"
            )
        record = data[0]
        if not isinstance(record, dict):
            raise TypeError(f"Unexpected profile record type: {type(record).__name__}")
        return dict(record)

    raise TypeError(f"Unexpected profile lookup result type: {type(data).__name__}")
