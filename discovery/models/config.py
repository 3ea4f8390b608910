"""
Engine configuration: scoring, retrieval, learning, cache and batch parameters.

DiscoveryConfig defaults are defined here. The server may pass a dict
(e.g. from a JSON file named by DISCOVERY_CONFIG_PATH); from_dict() merges it
with these defaults.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from .scoring import ScoringWeights


class DiscoveryConfig(BaseModel):
    """Configuration for the discovery engine."""

    # -------------------------------------------------------------------------
    # Scoring
    # final = sim * relevance + eng * popularity + temporal * recency
    #         + diversity * diversity + content_type * 0.1
    # -------------------------------------------------------------------------

    # Default blend weights when the caller does not pass custom weights.
    default_weights: ScoringWeights = ScoringWeights()

    # temporal = exp(-age_hours / temporal_decay_hours). 48 gives a two-day decay.
    temporal_decay_hours: float = Field(default=48.0, gt=0)

    # Added as diversity_score * diversity_boost during diversification.
    diversity_boost: float = Field(default=0.1, ge=0)

    # Embedding dimension D of item and preference vectors.
    embedding_dimensions: int = Field(default=1024, gt=0)

    # -------------------------------------------------------------------------
    # Candidate retrieval
    # -------------------------------------------------------------------------

    # Largest page size accepted by the feed and similar-content entry points.
    max_feed_limit: int = Field(default=100, gt=0)

    # Candidates fetched per request = limit * candidate_multiplier.
    candidate_multiplier: int = Field(default=3, ge=1)

    # Merge vector index nearest neighbours of the profile into the pool.
    semantic_candidates_enabled: bool = True

    # Number of recent hashtags loaded into the user context for diversity.
    recent_topics_limit: int = Field(default=50, ge=0)

    # -------------------------------------------------------------------------
    # Similar content
    # -------------------------------------------------------------------------

    # Hits below this cosine similarity are dropped.
    min_similarity: float = Field(default=0.7, ge=0, le=1)

    # Secondary blend for similar content: sim, engagement, temporal.
    similar_weight_similarity: float = 0.7
    similar_weight_engagement: float = 0.2
    similar_weight_temporal: float = 0.1

    # -------------------------------------------------------------------------
    # Preference learning
    # new = current * (1 - rate) + centroid * rate
    # -------------------------------------------------------------------------

    learning_rate: float = Field(default=0.1, ge=0, le=1)
    affinity_learning_rate: float = Field(default=0.2, ge=0, le=1)

    # Weights for the historical profile: saved posts count more than created ones.
    saved_post_weight: float = Field(default=2.0, gt=0)
    created_post_weight: float = Field(default=1.5, gt=0)
    saved_posts_limit: int = Field(default=100, gt=0)
    created_posts_limit: int = Field(default=50, gt=0)

    # Per interaction type weight when update_preferences gets no explicit weights.
    interaction_weights: Dict[str, float] = {
        "save": 2.0,
        "create": 1.5,
        "share": 1.2,
        "like": 1.0,
    }

    # -------------------------------------------------------------------------
    # Cache TTLs (seconds)
    # -------------------------------------------------------------------------

    feed_cache_ttl: int = Field(default=600, gt=0)
    # Experimental features / custom weights are less likely to be reused verbatim.
    experimental_feed_cache_ttl: int = Field(default=180, gt=0)
    preference_cache_ttl: int = Field(default=3600, gt=0)
    rules_cache_ttl: int = Field(default=86400, gt=0)

    # Keys deleted concurrently per batch during pattern invalidation.
    invalidation_batch_size: int = Field(default=20, gt=0)

    # -------------------------------------------------------------------------
    # Batch mode
    # -------------------------------------------------------------------------

    batch_chunk_size: int = Field(default=10, gt=0)

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "DiscoveryConfig":
        """Create config from a dictionary (e.g., loaded from JSON)."""
        flat = {}
        for section in ("scoring", "retrieval", "similar", "learning", "cache", "batch"):
            if section in config_dict:
                flat.update(config_dict[section])
        if "weights" in config_dict:
            flat["default_weights"] = ScoringWeights.model_validate(config_dict["weights"])
        allowed = set(cls.model_fields)
        flat.update({k: v for k, v in config_dict.items() if k in allowed})
        filtered = {k: v for k, v in flat.items() if k in allowed}
        return cls.model_validate(filtered)


DEFAULT_CONFIG = DiscoveryConfig()


def resolve_config(config: Optional["DiscoveryConfig"]) -> "DiscoveryConfig":
    """Return config or DEFAULT_CONFIG when none is provided."""
    return config if config is not None else DEFAULT_CONFIG
