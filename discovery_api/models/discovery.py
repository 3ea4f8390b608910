"""Request/response models for discovery endpoints."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from discovery.models import BatchFeedOptions, FeedItem


class FeedRequest(BaseModel):
    user_id: str
    limit: int = 20
    cursor: Optional[str] = None
    weights: Optional[Dict[str, float]] = None
    experimental_features: bool = True
    force_refresh: bool = False
    diversity_boost: Optional[float] = None
    include_explanations: bool = False


class PreferenceUpdateRequest(BaseModel):
    item_ids: List[str]
    interaction_types: List[str]
    weights: Optional[List[float]] = None


class PreferenceResetResponse(BaseModel):
    user_id: str
    reset: bool = True


class BatchFeedRequest(BaseModel):
    user_ids: List[str] = Field(..., max_length=500)
    options: BatchFeedOptions = BatchFeedOptions()


class BatchFeedResponse(BaseModel):
    feeds: Dict[str, List[FeedItem]]
