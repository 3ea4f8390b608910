"""Data models for the discovery engine."""

from .config import DEFAULT_CONFIG, DiscoveryConfig, resolve_config
from .content import (
    ContentItem,
    ContentQueryFilters,
    ContentType,
    EngagementCounters,
    ensure_items,
)
from .feed import (
    BatchFeedOptions,
    DiscoveryFeed,
    FeedItem,
    FeedStrategy,
    RecommendationExplanation,
    ScoreReason,
    SimilarItem,
)
from .invalidation import (
    EventType,
    InvalidationEvent,
    InvalidationRule,
    RuleConditions,
    RulePriority,
    TimeRange,
)
from .preferences import (
    DEFAULT_CONTENT_TYPE_AFFINITY,
    InteractionType,
    UserContext,
    UserPreferenceProfile,
)
from .scoring import ScoredCandidate, ScoringWeights

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONTENT_TYPE_AFFINITY",
    "BatchFeedOptions",
    "ContentItem",
    "ContentQueryFilters",
    "ContentType",
    "DiscoveryConfig",
    "DiscoveryFeed",
    "EngagementCounters",
    "EventType",
    "FeedItem",
    "FeedStrategy",
    "InteractionType",
    "InvalidationEvent",
    "InvalidationRule",
    "RecommendationExplanation",
    "RuleConditions",
    "RulePriority",
    "ScoreReason",
    "ScoredCandidate",
    "ScoringWeights",
    "SimilarItem",
    "TimeRange",
    "UserContext",
    "UserPreferenceProfile",
    "ensure_items",
    "resolve_config",
]
