"""Shared utilities for vector math and score components."""

from .scores import diversity_score, engagement_score, temporal_score
from .vectors import cosine_similarity, interpolate, normalize, weighted_centroid

__all__ = [
    "cosine_similarity",
    "diversity_score",
    "engagement_score",
    "interpolate",
    "normalize",
    "temporal_score",
    "weighted_centroid",
]
