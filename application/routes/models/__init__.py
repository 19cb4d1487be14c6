"""
Request/Response Models for API endpoints.

Provides Pydantic models for type-safe request validation.
"""

from .likes_models import LikesActionRequest, LikesQueryParams

__all__ = ["LikesActionRequest", "LikesQueryParams"]
