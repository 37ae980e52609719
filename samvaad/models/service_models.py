"""
Service Layer Data Transfer Objects.

Return envelope for the profile operations exposed to the presentation
layer.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

__all__ = ["ServiceResult"]


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Generic over ``T`` so callers can annotate return types precisely
    (e.g. ``ServiceResult[Profile]``).  ``status_code`` follows HTTP
    conventions: 400 invalid input, 403 not allowed, 404 not found,
    503 collaborator failure.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
