"""
Ranking and diversification of scored candidates.

rank() orders by final_score descending with newer items first on ties.
diversify() is a single-pass boost (final += diversity * boost) followed by a
re-rank; it does not iterate like full MMR.
"""

from typing import List

from ...models.scoring import ScoredCandidate


def _rank_key(candidate: ScoredCandidate):
    return (candidate.final_score, candidate.item.created_at)


def rank(candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
    """Descending final_score, ties broken by created_at descending. Stable."""
    return sorted(candidates, key=_rank_key, reverse=True)


def diversify(ranked: List[ScoredCandidate], diversity_boost: float) -> List[ScoredCandidate]:
    """Add diversity_score * diversity_boost to every final_score, then re-rank."""
    boosted = [
        c.model_copy(update={"final_score": c.final_score + c.diversity_score * diversity_boost})
        for c in ranked
    ]
    return rank(boosted)
