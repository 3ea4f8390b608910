"""
Feed models: what the orchestrator returns to callers.

FeedItem carries scores only when the item went through the scoring pipeline;
fallback items leave every score as None.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .content import ContentItem
from .scoring import ScoredCandidate, ScoringWeights


class FeedStrategy(str, Enum):
    PERSONALIZED = "personalized"
    RECENCY = "recency"
    FALLBACK = "fallback"
    ERROR = "error"


class ScoreReason(BaseModel):
    score: float
    explanation: str


class RecommendationExplanation(BaseModel):
    item_id: str
    reasons: Dict[str, ScoreReason]
    primary_reason: str


class FeedItem(BaseModel):
    item: ContentItem
    similarity_score: Optional[float] = None
    engagement_score: Optional[float] = None
    temporal_score: Optional[float] = None
    diversity_score: Optional[float] = None
    content_type_score: Optional[float] = None
    final_score: Optional[float] = None
    explanation: Optional[RecommendationExplanation] = None

    @property
    def is_scored(self) -> bool:
        return self.final_score is not None

    @classmethod
    def from_scored(cls, scored: ScoredCandidate) -> "FeedItem":
        return cls(
            item=scored.item,
            similarity_score=scored.similarity_score,
            engagement_score=scored.engagement_score,
            temporal_score=scored.temporal_score,
            diversity_score=scored.diversity_score,
            content_type_score=scored.content_type_score,
            final_score=scored.final_score,
        )


class DiscoveryFeed(BaseModel):
    """
    One page of the discovery feed.

    strategy=ERROR means even the fallback failed; items is empty and error
    holds the message. The caller decides the transport-level status.
    """

    items: List[FeedItem] = []
    has_more: bool = False
    next_cursor: Optional[str] = None
    strategy: FeedStrategy = FeedStrategy.PERSONALIZED
    cached: bool = False
    error: Optional[str] = None


class SimilarItem(BaseModel):
    item: ContentItem
    similarity_score: float
    engagement_score: float
    temporal_score: float
    final_score: float
    rank: int


class BatchFeedOptions(BaseModel):
    limit: int = Field(default=20, gt=0)
    weights: Optional[ScoringWeights] = None
    experimental_features: bool = True
    force_refresh: bool = False
    diversity_boost: Optional[float] = Field(default=None, ge=0)
