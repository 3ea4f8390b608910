"""
Score helpers: engagement, temporal and diversity components.

Shared by the scoring engine and the similar-content entry point. All helpers
take `now` explicitly so scoring stays deterministic.
"""

import math
from datetime import datetime
from typing import Iterable

from ..models.content import ContentItem

DEFAULT_TEMPORAL_DECAY_HOURS = 48.0


def engagement_score(item: ContentItem, now: datetime) -> float:
    """
    Log-scaled engagement rate per hour, capped at 1.

    rate = (saves + comments) / max(age_hours, 1); score = min(log10(rate + 1) / 2, 1).
    Items with no engagement or a non-positive age score 0.
    """
    age_hours = item.age_hours(now)
    total = item.engagement.total
    if age_hours <= 0 or total == 0:
        return 0.0
    rate = total / max(age_hours, 1.0)
    return min(math.log10(rate + 1.0) / 2.0, 1.0)


def temporal_score(
    item: ContentItem,
    now: datetime,
    decay_hours: float = DEFAULT_TEMPORAL_DECAY_HOURS,
) -> float:
    """exp(-age_hours / decay_hours); future timestamps count as age 0."""
    age_hours = max(item.age_hours(now), 0.0)
    return math.exp(-age_hours / decay_hours)


def diversity_score(item: ContentItem, recent_topics: Iterable[str]) -> float:
    """1 - share of the item's hashtags already in the user's recent topics."""
    recent = set(recent_topics)
    overlap = sum(1 for tag in item.hashtags if tag in recent)
    return 1.0 - overlap / max(len(item.hashtags), 1)
