"""
Human-readable explanations for scored recommendations.

One reason per score component; the primary reason is the highest-scoring
component (first wins on ties, in the order listed below).
"""

from datetime import datetime
from typing import Dict, List

from ...models.feed import RecommendationExplanation, ScoreReason
from ...models.scoring import ScoredCandidate


def format_time_ago(created_at: datetime, now: datetime) -> str:
    hours = int((now - created_at).total_seconds() // 3600)
    if hours < 1:
        return "just now"
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def explain(candidate: ScoredCandidate, now: datetime) -> RecommendationExplanation:
    item = candidate.item
    reasons = {
        "similarity": ScoreReason(
            score=candidate.similarity_score,
            explanation=f"{candidate.similarity_score * 100:.1f}% similar to your interests",
        ),
        "engagement": ScoreReason(
            score=candidate.engagement_score,
            explanation=(
                f"High engagement rate: {item.engagement.save_count} saves, "
                f"{item.engagement.comment_count} comments"
            ),
        ),
        "recency": ScoreReason(
            score=candidate.temporal_score,
            explanation=f"Posted {format_time_ago(item.created_at, now)}",
        ),
        "diversity": ScoreReason(
            score=candidate.diversity_score,
            explanation="Explores new topics" if candidate.diversity_score > 0 else "Similar to recent content",
        ),
        "content_type": ScoreReason(
            score=candidate.content_type_score,
            explanation=f"Matches your {item.content_type.value} preference",
        ),
    }
    primary = _primary_reason(reasons)
    return RecommendationExplanation(item_id=item.id, reasons=reasons, primary_reason=primary)


def _primary_reason(reasons: Dict[str, ScoreReason]) -> str:
    primary, best = None, None
    for name, reason in reasons.items():
        if best is None or reason.score > best:
            primary, best = name, reason.score
    return primary


def generate_explanations(candidates: List[ScoredCandidate], now: datetime) -> List[RecommendationExplanation]:
    return [explain(c, now) for c in candidates]
