"""Cache key builders. Prefixes line up with the default invalidation rules."""

from typing import Optional

from ..models.scoring import ScoringWeights

FEED_PREFIX = "discovery_feed"
PREFERENCES_PREFIX = "user_preferences"
EMBEDDING_PREFIX = "item_embedding"
RULES_KEY = "invalidation_rules"


def feed_key(
    user_id: str,
    limit: int,
    cursor: Optional[str],
    weights: ScoringWeights,
    diversity_boost: Optional[float] = None,
) -> str:
    fingerprint = weights.fingerprint(diversity_boost)
    return f"{FEED_PREFIX}:{user_id}:{limit}:{cursor or 'initial'}:{fingerprint}"


def preferences_key(user_id: str) -> str:
    return f"{PREFERENCES_PREFIX}:{user_id}"


def embedding_key(item_id: str) -> str:
    return f"{EMBEDDING_PREFIX}:{item_id}"
