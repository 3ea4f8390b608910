"""
Personalized discovery engine.

Public API: RecommendationOrchestrator plus the models and collaborator
Protocols it is built from.
"""

from .errors import (
    CacheUnavailable,
    DiscoveryError,
    InvalidInput,
    ItemNotFound,
    NoValidSignal,
    UpstreamUnavailable,
)
from .interfaces import CacheBackend, ContentStore, EmbeddingProvider, VectorIndex, VectorMatch
from .models import DEFAULT_CONFIG, DiscoveryConfig, DiscoveryFeed, ScoringWeights
from .stages import RecommendationOrchestrator

__all__ = [
    "DEFAULT_CONFIG",
    "CacheBackend",
    "CacheUnavailable",
    "ContentStore",
    "DiscoveryConfig",
    "DiscoveryError",
    "DiscoveryFeed",
    "EmbeddingProvider",
    "InvalidInput",
    "ItemNotFound",
    "NoValidSignal",
    "RecommendationOrchestrator",
    "ScoringWeights",
    "UpstreamUnavailable",
    "VectorIndex",
    "VectorMatch",
]
