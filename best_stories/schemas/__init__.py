"""Pydantic schemas for API request/response validation."""

from best_stories.schemas.common import ErrorDetail, ErrorResponse
from best_stories.schemas.stories import CacheStatus, StorySummary

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "CacheStatus",
    "StorySummary",
]
