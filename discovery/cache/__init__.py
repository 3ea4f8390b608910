"""Caching and invalidation: JSON cache layer, key builders and rule-driven purges."""

from .invalidation import InvalidationService
from .keys import RULES_KEY, embedding_key, feed_key, preferences_key
from .layer import CacheLayer
from .patterns import (
    DEFAULT_RULES,
    InvalidationPatterns,
    InvalidationTriggers,
    expand_pattern,
    pattern_to_regex,
    validate_pattern,
)

__all__ = [
    "DEFAULT_RULES",
    "RULES_KEY",
    "CacheLayer",
    "InvalidationPatterns",
    "InvalidationService",
    "InvalidationTriggers",
    "embedding_key",
    "expand_pattern",
    "feed_key",
    "pattern_to_regex",
    "preferences_key",
    "validate_pattern",
]
