"""
Per-candidate scoring: similarity, engagement, temporal, diversity and
content-type components blended into final_score.

Pure and deterministic; `now` is always passed in.
"""

from datetime import datetime
from typing import List, Optional

from ...models.config import DiscoveryConfig, resolve_config
from ...models.content import ContentItem
from ...models.preferences import DEFAULT_CONTENT_TYPE_AFFINITY, UserContext, UserPreferenceProfile
from ...models.scoring import ScoredCandidate, ScoringWeights
from ...utils.scores import diversity_score, engagement_score, temporal_score
from ...utils.vectors import cosine_similarity

# Fixed weight of the content-type affinity term; not part of ScoringWeights.
CONTENT_TYPE_WEIGHT = 0.1


def similarity_score(
    item: ContentItem,
    profile: Optional[UserPreferenceProfile],
) -> float:
    """Cosine between profile and item embedding, clamped to [0, 1]. 0 when either is missing."""
    if profile is None or not item.embedding_vector or not profile.vector:
        return 0.0
    sim = cosine_similarity(profile.vector, item.embedding_vector)
    return max(0.0, min(1.0, sim))


def content_type_score(item: ContentItem, profile: Optional[UserPreferenceProfile]) -> float:
    if profile is None:
        return DEFAULT_CONTENT_TYPE_AFFINITY
    return profile.affinity_for(item.content_type.value)


def blend(
    sim: float,
    eng: float,
    temp: float,
    div: float,
    ct: float,
    weights: ScoringWeights,
) -> float:
    """final = sim*relevance + eng*popularity + temp*recency + div*diversity + ct*CONTENT_TYPE_WEIGHT."""
    return (
        sim * weights.relevance
        + eng * weights.popularity
        + temp * weights.recency
        + div * weights.diversity
        + ct * CONTENT_TYPE_WEIGHT
    )


class ScoringEngine:
    """Scores candidates against a preference profile and user context."""

    def __init__(self, config: Optional[DiscoveryConfig] = None):
        self._config = resolve_config(config)

    def score(
        self,
        item: ContentItem,
        profile: Optional[UserPreferenceProfile],
        context: UserContext,
        now: datetime,
        weights: Optional[ScoringWeights] = None,
    ) -> ScoredCandidate:
        weights = weights or self._config.default_weights
        sim = similarity_score(item, profile)
        eng = engagement_score(item, now)
        temp = temporal_score(item, now, self._config.temporal_decay_hours)
        div = diversity_score(item, context.recent_topics)
        ct = content_type_score(item, profile)
        return ScoredCandidate(
            item=item,
            similarity_score=sim,
            engagement_score=eng,
            temporal_score=temp,
            diversity_score=div,
            content_type_score=ct,
            final_score=blend(sim, eng, temp, div, ct, weights),
        )

    def score_all(
        self,
        items: List[ContentItem],
        profile: Optional[UserPreferenceProfile],
        context: UserContext,
        now: datetime,
        weights: Optional[ScoringWeights] = None,
    ) -> List[ScoredCandidate]:
        return [self.score(item, profile, context, now, weights) for item in items]

    def score_recency(self, items: List[ContentItem], now: datetime) -> List[ScoredCandidate]:
        """
        Recency-only scoring for users without a profile.

        Components are still reported, but final_score is the temporal score so
        ranking is newest first.
        """
        scored = []
        for item in items:
            temp = temporal_score(item, now, self._config.temporal_decay_hours)
            scored.append(
                ScoredCandidate(
                    item=item,
                    similarity_score=0.0,
                    engagement_score=engagement_score(item, now),
                    temporal_score=temp,
                    diversity_score=0.0,
                    content_type_score=DEFAULT_CONTENT_TYPE_AFFINITY,
                    final_score=temp,
                )
            )
        return scored
