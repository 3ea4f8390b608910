"""
Per-request discovery session logs and aggregate performance summary.

Each feed request opens a session that records its phases, timings, candidate
and result counts, average component scores and quality metrics. The last 50
sessions per user and the last 100 finished sessions overall are kept in
memory for the admin endpoints.
"""

import logging
import math
import time
import uuid
from collections import Counter, deque
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .models.content import ContentItem
from .models.feed import DiscoveryFeed, FeedStrategy
from .models.scoring import ScoredCandidate

logger = logging.getLogger(__name__)

MAX_SESSIONS_PER_USER = 50
MAX_RECENT_SESSIONS = 100


class Phase(str, Enum):
    START = "start"
    CANDIDATE_RETRIEVAL = "candidate_retrieval"
    SCORING = "scoring"
    RANKING = "ranking"
    DIVERSIFICATION = "diversification"
    CACHE_WRITE = "cache_write"
    COMPLETE = "complete"
    ERROR = "error"


class AgeDistribution(BaseModel):
    less_than_1h: int = 0
    one_to_6h: int = 0
    six_to_24h: int = 0
    more_than_24h: int = 0


class SessionMetrics(BaseModel):
    processing_time_ms: float = 0.0
    candidates_found: int = 0
    candidates_scored: int = 0
    final_results: int = 0

    average_similarity_score: float = 0.0
    average_engagement_score: float = 0.0
    average_temporal_score: float = 0.0
    average_diversity_score: float = 0.0
    average_final_score: float = 0.0

    content_type_breakdown: Dict[str, int] = {}
    age_distribution: AgeDistribution = Field(default_factory=AgeDistribution)

    uniqueness_ratio: float = 0.0
    freshness_score: float = 0.0
    personal_relevance_score: float = 0.0

    errors: List[str] = []
    warnings: List[str] = []


class DiscoverySession(BaseModel):
    session_id: str
    user_id: str
    started_at: datetime
    phase: Phase = Phase.START
    phases: List[Phase] = [Phase.START]
    options: Dict[str, Any] = {}
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    strategy: Optional[FeedStrategy] = None
    cached: bool = False
    result_ids: List[str] = []
    has_more: bool = False
    next_cursor: Optional[str] = None


class QualityScores(BaseModel):
    uniqueness: float = 0.0
    freshness: float = 0.0
    relevance: float = 0.0


class PerformanceSummary(BaseModel):
    total_sessions: int = 0
    average_processing_time_ms: float = 0.0
    average_results: float = 0.0
    error_rate: float = 0.0
    fallback_rate: float = 0.0
    cache_usage_rate: float = 0.0
    average_quality_scores: QualityScores = QualityScores()


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _age_distribution(items: Sequence[ContentItem], now: datetime) -> AgeDistribution:
    dist = AgeDistribution()
    for item in items:
        age = item.age_hours(now)
        if age < 1:
            dist.less_than_1h += 1
        elif age < 6:
            dist.one_to_6h += 1
        elif age < 24:
            dist.six_to_24h += 1
        else:
            dist.more_than_24h += 1
    return dist


class DiscoveryLogger:
    """In-memory session log for discovery requests."""

    def __init__(self, timer: Callable[[], float] = time.perf_counter):
        self._timer = timer
        self._active: Dict[str, DiscoverySession] = {}
        self._started: Dict[str, float] = {}
        self._by_user: Dict[str, Deque[DiscoverySession]] = {}
        self._recent: Deque[DiscoverySession] = deque(maxlen=MAX_RECENT_SESSIONS)

    def start_session(self, user_id: str, now: datetime, options: Optional[Dict[str, Any]] = None) -> str:
        session_id = f"ds_{uuid.uuid4().hex[:12]}"
        session = DiscoverySession(
            session_id=session_id,
            user_id=user_id,
            started_at=now,
            options=dict(options or {}),
        )
        self._active[session_id] = session
        self._started[session_id] = self._timer()
        history = self._by_user.setdefault(user_id, deque(maxlen=MAX_SESSIONS_PER_USER))
        history.append(session)
        logger.debug("[discovery] SESSION_START session_id=%s user_id=%s", session_id, user_id)
        return session_id

    def current_phase(self, session_id: str) -> Phase:
        session = self._active.get(session_id)
        return session.phase if session is not None else Phase.START

    def mark_phase(self, session_id: str, phase: Phase) -> None:
        session = self._active.get(session_id)
        if session is None:
            return
        session.phase = phase
        session.phases.append(phase)

    def log_candidates(self, session_id: str, candidates: Sequence[ContentItem], now: datetime) -> None:
        session = self._active.get(session_id)
        if session is None:
            return
        self.mark_phase(session_id, Phase.CANDIDATE_RETRIEVAL)
        session.metrics.candidates_found = len(candidates)
        session.metrics.age_distribution = _age_distribution(candidates, now)
        session.metrics.content_type_breakdown = dict(
            Counter(item.content_type.value for item in candidates)
        )

    def log_scoring(self, session_id: str, scored: Sequence[ScoredCandidate]) -> None:
        session = self._active.get(session_id)
        if session is None:
            return
        self.mark_phase(session_id, Phase.SCORING)
        m = session.metrics
        m.candidates_scored = len(scored)
        m.average_similarity_score = _average([c.similarity_score for c in scored])
        m.average_engagement_score = _average([c.engagement_score for c in scored])
        m.average_temporal_score = _average([c.temporal_score for c in scored])
        m.average_diversity_score = _average([c.diversity_score for c in scored])
        m.average_final_score = _average([c.final_score for c in scored])

    def log_warning(self, session_id: str, message: str) -> None:
        session = self._active.get(session_id)
        if session is not None:
            session.metrics.warnings.append(message)
        logger.warning("[discovery] %s session_id=%s", message, session_id)

    def log_results(self, session_id: str, feed: DiscoveryFeed, now: datetime) -> None:
        session = self._active.pop(session_id, None)
        if session is None:
            return
        items = [feed_item.item for feed_item in feed.items]
        m = session.metrics
        m.final_results = len(items)
        if items:
            m.uniqueness_ratio = len({item.author_id for item in items}) / len(items)
            m.freshness_score = _average(
                [math.exp(-0.1 * max(item.age_hours(now), 0.0)) for item in items]
            )
            m.personal_relevance_score = m.average_final_score
        session.strategy = feed.strategy
        session.cached = feed.cached
        session.result_ids = [item.id for item in items]
        session.has_more = feed.has_more
        session.next_cursor = feed.next_cursor
        if feed.error:
            m.errors.append(feed.error)
        self._finish(session, Phase.ERROR if feed.strategy == FeedStrategy.ERROR else Phase.COMPLETE)
        logger.info(
            "[discovery] SESSION_COMPLETE session_id=%s user_id=%s strategy=%s results=%s cached=%s time_ms=%.1f",
            session_id, session.user_id, feed.strategy.value, len(items), feed.cached, m.processing_time_ms,
        )

    def log_error(self, session_id: str, error: BaseException, phase: Phase) -> None:
        """Record an error raised during phase; the session stays open for the fallback result."""
        session = self._active.get(session_id)
        if session is not None:
            session.metrics.errors.append(f"{phase.value}: {error}")
            self.mark_phase(session_id, Phase.ERROR)
        logger.error(
            "[discovery] ERROR phase=%s session_id=%s error=%s",
            phase.value, session_id, error,
        )

    def abandon_session(self, session_id: str, reason: str) -> None:
        """Close a session that never produced a result. No-op once log_results ran."""
        session = self._active.pop(session_id, None)
        if session is None:
            return
        session.metrics.errors.append(f"{session.phase.value}: {reason}")
        self._finish(session, Phase.ERROR)
        logger.warning(
            "[discovery] SESSION_ABANDONED session_id=%s user_id=%s reason=%s",
            session_id, session.user_id, reason,
        )

    @property
    def open_sessions(self) -> int:
        return len(self._active)

    def _finish(self, session: DiscoverySession, phase: Phase) -> None:
        started = self._started.pop(session.session_id, None)
        if started is not None:
            session.metrics.processing_time_ms = (self._timer() - started) * 1000.0
        session.phase = phase
        if session.phases[-1] != phase:
            session.phases.append(phase)
        self._recent.append(session)

    def get_session_analytics(self, user_id: str, limit: int = 10) -> List[DiscoverySession]:
        """Most recent sessions for user_id, oldest first."""
        history = list(self._by_user.get(user_id, ()))
        return history[-limit:] if limit > 0 else []

    def get_performance_summary(self) -> PerformanceSummary:
        sessions = list(self._recent)
        if not sessions:
            return PerformanceSummary()
        total = len(sessions)
        completed = [s for s in sessions if s.phase == Phase.COMPLETE]
        errors = [s for s in sessions if s.phase == Phase.ERROR or s.metrics.errors]
        fallbacks = [s for s in sessions if s.strategy == FeedStrategy.FALLBACK]
        cached = [s for s in sessions if s.cached]
        return PerformanceSummary(
            total_sessions=total,
            average_processing_time_ms=_average([s.metrics.processing_time_ms for s in completed]),
            average_results=_average([s.metrics.final_results for s in completed]),
            error_rate=len(errors) / total,
            fallback_rate=len(fallbacks) / total,
            cache_usage_rate=len(cached) / total,
            average_quality_scores=QualityScores(
                uniqueness=_average([s.metrics.uniqueness_ratio for s in completed]),
                freshness=_average([s.metrics.freshness_score for s in completed]),
                relevance=_average([s.metrics.personal_relevance_score for s in completed]),
            ),
        )
