"""
Ranking: score candidates, order them, diversify and explain.

Public API: ScoringEngine, rank, diversify, generate_explanations.
- scoring: per-candidate component scores and the final blend.
- ranker: ordering and single-pass diversity boost.
- explanations: per-component reasons for a ranked item.
"""

from .explanations import explain, generate_explanations
from .ranker import diversify, rank
from .scoring import CONTENT_TYPE_WEIGHT, ScoringEngine

__all__ = [
    "CONTENT_TYPE_WEIGHT",
    "ScoringEngine",
    "diversify",
    "explain",
    "generate_explanations",
    "rank",
]
