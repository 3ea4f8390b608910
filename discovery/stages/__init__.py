"""Pipeline stages: candidate retrieval, ranking, preference learning and orchestration."""

from .candidate_pool import CandidateRetriever
from .orchestrator import RecommendationOrchestrator, paginate
from .preferences import PreferenceLearner
from .ranking import CONTENT_TYPE_WEIGHT, ScoringEngine, diversify, rank

__all__ = [
    "CONTENT_TYPE_WEIGHT",
    "CandidateRetriever",
    "PreferenceLearner",
    "RecommendationOrchestrator",
    "ScoringEngine",
    "diversify",
    "paginate",
    "rank",
]
