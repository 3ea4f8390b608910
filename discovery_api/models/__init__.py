"""Pydantic request/response models for the API."""

from .admin import (
    InvalidateEventResponse,
    InvalidatePatternRequest,
    InvalidatePatternResponse,
    RulesResponse,
)
from .discovery import (
    BatchFeedRequest,
    BatchFeedResponse,
    FeedRequest,
    PreferenceResetResponse,
    PreferenceUpdateRequest,
)

__all__ = [
    "BatchFeedRequest",
    "BatchFeedResponse",
    "FeedRequest",
    "InvalidateEventResponse",
    "InvalidatePatternRequest",
    "InvalidatePatternResponse",
    "PreferenceResetResponse",
    "PreferenceUpdateRequest",
    "RulesResponse",
]
