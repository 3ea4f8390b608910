"""
Scoring models: ScoringWeights and ScoredCandidate.

ScoredCandidate is ephemeral: built during one scoring pass, consumed by the
ranker and discarded once the response is assembled.
"""

import hashlib
import json
from typing import Optional

from pydantic import BaseModel, Field

from .content import ContentItem


class ScoringWeights(BaseModel):
    """
    Blend weights for the final score. Need not sum to 1.

    final = similarity * relevance + engagement * popularity
            + temporal * recency + diversity * diversity
            + content_type * CONTENT_TYPE_WEIGHT
    """

    relevance: float = Field(default=0.5, ge=0.0)
    recency: float = Field(default=0.025, ge=0.0)
    popularity: float = Field(default=0.35, ge=0.0)
    diversity: float = Field(default=0.025, ge=0.0)

    def fingerprint(self, diversity_boost: Optional[float] = None) -> str:
        """Short stable hash used in feed cache keys."""
        payload = self.model_dump()
        if diversity_boost is not None:
            payload["diversity_boost"] = diversity_boost
        raw = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(raw).hexdigest()[:16]


class ScoredCandidate(BaseModel):
    """A candidate item with all of its scoring components."""

    item: ContentItem
    similarity_score: float
    engagement_score: float
    temporal_score: float
    diversity_score: float
    content_type_score: float
    final_score: float

    @property
    def item_id(self) -> str:
        return self.item.id
