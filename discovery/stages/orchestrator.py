"""
Recommendation orchestrator: the engine's entry points.

generate_discovery_feed runs: cache lookup → profile → candidate retrieval →
scoring → ranking → diversification → pagination → cache write. Any failure
after argument validation switches to the fallback feed (newest visible items,
unscored); if that fails too an explicit error feed is returned instead of
raising.

Other entry points: find_similar_content, update_user_preferences,
reset_user_preferences, batch_generate_discovery_feeds and the admin
operations (invalidation, rules, session analytics).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..cache.invalidation import InvalidationService
from ..cache.keys import feed_key
from ..cache.layer import CacheLayer
from ..cache.patterns import InvalidationTriggers
from ..errors import InvalidInput, ItemNotFound
from ..interfaces import CacheBackend, ContentStore, EmbeddingProvider, VectorIndex
from ..models.config import DiscoveryConfig, resolve_config
from ..models.feed import BatchFeedOptions, DiscoveryFeed, FeedItem, FeedStrategy, SimilarItem
from ..models.invalidation import InvalidationEvent, InvalidationRule
from ..models.preferences import UserContext, UserPreferenceProfile
from ..models.scoring import ScoredCandidate, ScoringWeights
from ..monitoring import DiscoveryLogger, DiscoverySession, PerformanceSummary, Phase
from ..utils.scores import engagement_score, temporal_score
from .candidate_pool import CandidateRetriever, is_visible_to
from .preferences import PreferenceLearner
from .ranking import ScoringEngine, diversify, explain, rank

logger = logging.getLogger(__name__)

WeightsInput = Union[ScoringWeights, Dict[str, Any], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def paginate(
    ranked: List[ScoredCandidate],
    cursor: Optional[str],
    limit: int,
) -> Tuple[List[ScoredCandidate], bool, Optional[str], bool]:
    """
    Slice the ranked list after the cursor item and truncate to limit.

    Returns (page, has_more, next_cursor, cursor_found). has_more is True when
    at least `limit` items remained before truncation. An unknown cursor
    restarts from the top.
    """
    start = 0
    cursor_found = True
    if cursor:
        position = next((i for i, c in enumerate(ranked) if c.item.id == cursor), None)
        if position is None:
            cursor_found = False
        else:
            start = position + 1
    remaining = ranked[start:]
    page = remaining[:limit]
    has_more = len(remaining) >= limit
    next_cursor = page[-1].item.id if page else None
    return page, has_more, next_cursor, cursor_found


def _candidate_from_feed_item(feed_item: FeedItem) -> ScoredCandidate:
    return ScoredCandidate(
        item=feed_item.item,
        similarity_score=feed_item.similarity_score or 0.0,
        engagement_score=feed_item.engagement_score or 0.0,
        temporal_score=feed_item.temporal_score or 0.0,
        diversity_score=feed_item.diversity_score or 0.0,
        content_type_score=feed_item.content_type_score or 0.0,
        final_score=feed_item.final_score or 0.0,
    )


class RecommendationOrchestrator:
    """
    Discovery engine facade. All collaborators are injected; nothing is global.

    cache_backend=None disables caching entirely; results stay correct.
    """

    def __init__(
        self,
        content_store: ContentStore,
        vector_index: VectorIndex,
        cache_backend: Optional[CacheBackend] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        config: Optional[DiscoveryConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        monitor: Optional[DiscoveryLogger] = None,
    ):
        self.config = resolve_config(config)
        self._store = content_store
        self._clock = clock
        self.cache = CacheLayer(cache_backend)
        self.monitor = monitor or DiscoveryLogger()
        self.retriever = CandidateRetriever(content_store, vector_index, self.config)
        self.scoring = ScoringEngine(self.config)
        self.preferences = PreferenceLearner(
            content_store,
            vector_index,
            self.cache,
            embedding_provider,
            self.config,
            clock,
        )
        self.invalidation = InvalidationService(self.cache, self.config, clock)
        self._index = vector_index

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _check_user_id(self, user_id: str) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("user_id must be a non-empty string")

    def _check_limit(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidInput(f"limit must be an integer, got {limit!r}")
        if limit < 1 or limit > self.config.max_feed_limit:
            raise InvalidInput(f"limit must be between 1 and {self.config.max_feed_limit}, got {limit}")

    @staticmethod
    def _coerce_weights(weights: WeightsInput) -> Optional[ScoringWeights]:
        if weights is None or isinstance(weights, ScoringWeights):
            return weights
        try:
            return ScoringWeights.model_validate(weights)
        except ValidationError as e:
            raise InvalidInput(f"Invalid scoring weights: {e.errors()[0]['msg']}") from e

    # -------------------------------------------------------------------------
    # Discovery feed
    # -------------------------------------------------------------------------

    async def generate_discovery_feed(
        self,
        user_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        weights: WeightsInput = None,
        experimental_features: bool = True,
        force_refresh: bool = False,
        diversity_boost: Optional[float] = None,
        include_explanations: bool = False,
    ) -> DiscoveryFeed:
        """
        One page of the personalized discovery feed.

        Raises InvalidInput for malformed arguments only. Integration failures
        produce a FALLBACK feed, or an ERROR feed when the fallback fails too.
        """
        self._check_user_id(user_id)
        self._check_limit(limit)
        custom_weights = self._coerce_weights(weights)
        if diversity_boost is not None and diversity_boost < 0:
            raise InvalidInput(f"diversity_boost must be non-negative, got {diversity_boost}")

        config = self.config
        effective_weights = custom_weights or config.default_weights
        boost = config.diversity_boost if diversity_boost is None else diversity_boost
        now = self._clock()
        key = feed_key(user_id, limit, cursor, effective_weights, diversity_boost)
        session_id = self.monitor.start_session(
            user_id,
            now,
            {
                "limit": limit,
                "cursor": cursor,
                "experimental_features": experimental_features,
                "custom_weights": custom_weights is not None,
                "force_refresh": force_refresh,
            },
        )

        try:
            if not force_refresh:
                cached = await self._cached_feed(key)
                if cached is not None:
                    feed = self._finish(cached, include_explanations, now)
                    self.monitor.log_results(session_id, feed, now)
                    return feed

            try:
                feed = await self._ranked_feed(
                    session_id, user_id, limit, cursor, effective_weights, boost, now
                )
            except Exception as e:
                self.monitor.log_error(session_id, e, self.monitor.current_phase(session_id))
                feed = None

            if feed is None:
                feed = await self._fallback_feed(session_id, user_id, limit)
            else:
                self.monitor.mark_phase(session_id, Phase.CACHE_WRITE)
                ttl = (
                    config.experimental_feed_cache_ttl
                    if experimental_features or custom_weights is not None
                    else config.feed_cache_ttl
                )
                await self.cache.set(key, feed.model_dump(mode="json"), ttl)

            feed = self._finish(feed, include_explanations, now)
            self.monitor.log_results(session_id, feed, now)
            return feed
        finally:
            # Cancelled or crashed requests must not stay open in the monitor.
            self.monitor.abandon_session(session_id, "request abandoned before a result")

    async def _cached_feed(self, key: str) -> Optional[DiscoveryFeed]:
        payload = await self.cache.get(key)
        if payload is None:
            return None
        try:
            feed = DiscoveryFeed.model_validate(payload)
        except ValidationError as e:
            logger.warning("[discovery] CACHED_FEED_INVALID key=%s error=%s", key, e)
            return None
        return feed.model_copy(update={"cached": True})

    async def _ranked_feed(
        self,
        session_id: str,
        user_id: str,
        limit: int,
        cursor: Optional[str],
        weights: ScoringWeights,
        diversity_boost: float,
        now: datetime,
    ) -> Optional[DiscoveryFeed]:
        """Personalized (or recency-only) ranking. None means: take the fallback path."""
        profile = await self.preferences.get_or_compute_profile(user_id)

        self.monitor.mark_phase(session_id, Phase.CANDIDATE_RETRIEVAL)
        candidates = await self.retriever.get_candidates(user_id, limit, profile)
        self.monitor.log_candidates(session_id, candidates, now)
        if not candidates:
            self.monitor.log_warning(session_id, f"FEED_NO_CANDIDATES user_id={user_id}")
            return None

        if profile is None:
            strategy = FeedStrategy.RECENCY
            scored = self.scoring.score_recency(candidates, now)
            self.monitor.log_scoring(session_id, scored)
            self.monitor.mark_phase(session_id, Phase.RANKING)
            ranked = rank(scored)
        else:
            strategy = FeedStrategy.PERSONALIZED
            context = await self._user_context(user_id)
            scored = self.scoring.score_all(candidates, profile, context, now, weights)
            self.monitor.log_scoring(session_id, scored)
            self.monitor.mark_phase(session_id, Phase.RANKING)
            ranked = rank(scored)
            self.monitor.mark_phase(session_id, Phase.DIVERSIFICATION)
            ranked = diversify(ranked, diversity_boost)

        page, has_more, next_cursor, cursor_found = paginate(ranked, cursor, limit)
        if not cursor_found:
            self.monitor.log_warning(
                session_id, f"FEED_UNKNOWN_CURSOR user_id={user_id} cursor={cursor}, restarting from top"
            )
        return DiscoveryFeed(
            items=[FeedItem.from_scored(c) for c in page],
            has_more=has_more,
            next_cursor=next_cursor,
            strategy=strategy,
        )

    async def _user_context(self, user_id: str) -> UserContext:
        topics = await self._store.get_recent_hashtags(user_id, self.config.recent_topics_limit)
        return UserContext(user_id=user_id, recent_topics=list(topics))

    async def _fallback_feed(self, session_id: str, user_id: str, limit: int) -> DiscoveryFeed:
        """Newest visible items with no scores; an ERROR feed if even this fails."""
        logger.warning("[discovery] FEED_FALLBACK user_id=%s session_id=%s", user_id, session_id)
        try:
            items = await self.retriever.get_recent_visible(user_id, limit + 1)
        except Exception as e:
            logger.error("[discovery] FEED_FALLBACK_FAILED user_id=%s error=%s", user_id, e)
            return DiscoveryFeed(
                strategy=FeedStrategy.ERROR,
                error=f"Discovery feed unavailable: {e}",
            )
        page = items[:limit]
        return DiscoveryFeed(
            items=[FeedItem(item=item) for item in page],
            has_more=len(items) > limit,
            next_cursor=page[-1].id if page else None,
            strategy=FeedStrategy.FALLBACK,
        )

    def _finish(self, feed: DiscoveryFeed, include_explanations: bool, now: datetime) -> DiscoveryFeed:
        if not include_explanations:
            return feed
        items = [
            fi.model_copy(update={"explanation": explain(_candidate_from_feed_item(fi), now)})
            if fi.is_scored
            else fi
            for fi in feed.items
        ]
        return feed.model_copy(update={"items": items})

    # -------------------------------------------------------------------------
    # Similar content
    # -------------------------------------------------------------------------

    async def find_similar_content(
        self,
        item_id: str,
        user_id: str,
        limit: int = 10,
    ) -> List[SimilarItem]:
        """
        Items semantically close to item_id that user_id may see.

        Excludes the reference item, the requester's own items, hidden items and
        hits under min_similarity. Ranked by 0.7*sim + 0.2*eng + 0.1*temporal.
        Raises ItemNotFound for an unknown reference.
        """
        self._check_user_id(user_id)
        self._check_limit(limit)
        config = self.config

        reference = await self._store.get_item(item_id)
        if reference is None:
            raise ItemNotFound(item_id)
        vector = await self.preferences.resolve_embedding(item_id, reference)
        if not vector:
            logger.warning("[discovery] SIMILAR_NO_EMBEDDING item_id=%s", item_id)
            return []

        blocked_ids, following_ids, matches = await asyncio.gather(
            self._store.get_blocked_user_ids(user_id),
            self._store.get_following_ids(user_id),
            self._index.nearest_neighbors(
                vector,
                limit * config.candidate_multiplier + 1,
                {"exclude_author_id": user_id, "min_score": config.min_similarity},
            ),
        )
        matches = [m for m in matches if m.item_id != item_id and m.score >= config.min_similarity]
        items = await asyncio.gather(*(self._store.get_item(m.item_id) for m in matches))

        now = self._clock()
        results = []
        for match, item in zip(matches, items):
            if item is None or item.author_id == user_id:
                continue
            if not is_visible_to(item, user_id, blocked_ids, following_ids):
                continue
            sim = max(0.0, min(1.0, match.score))
            eng = engagement_score(item, now)
            temp = temporal_score(item, now, config.temporal_decay_hours)
            final = (
                sim * config.similar_weight_similarity
                + eng * config.similar_weight_engagement
                + temp * config.similar_weight_temporal
            )
            results.append((final, item.created_at, item, sim, eng, temp))

        results.sort(key=lambda r: (r[0], r[1]), reverse=True)
        return [
            SimilarItem(
                item=item,
                similarity_score=sim,
                engagement_score=eng,
                temporal_score=temp,
                final_score=final,
                rank=position,
            )
            for position, (final, _, item, sim, eng, temp) in enumerate(results[:limit], start=1)
        ]

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    async def update_user_preferences(
        self,
        user_id: str,
        item_ids: Sequence[str],
        interaction_types: Sequence[str],
        weights: Optional[Sequence[float]] = None,
    ) -> UserPreferenceProfile:
        """Update the profile, then purge the user's cached feeds."""
        self._check_user_id(user_id)
        profile = await self.preferences.update_preferences(user_id, item_ids, interaction_types, weights)
        await self.invalidation.invalidate_by_event(InvalidationTriggers.preference_update(user_id))
        return profile

    async def reset_user_preferences(self, user_id: str) -> None:
        """Drop the cached profile and feeds; the next request recomputes from history."""
        self._check_user_id(user_id)
        await self.invalidation.invalidate_by_event(InvalidationTriggers.preference_reset(user_id))

    async def get_user_preferences(self, user_id: str) -> Optional[UserPreferenceProfile]:
        self._check_user_id(user_id)
        return await self.preferences.get_or_compute_profile(user_id)

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    async def batch_generate_discovery_feeds(
        self,
        user_ids: Sequence[str],
        options: Optional[BatchFeedOptions] = None,
    ) -> Dict[str, List[FeedItem]]:
        """
        Feeds for many users, chunk by chunk. A failing user gets an empty list;
        the rest of the batch is unaffected.
        """
        options = options or BatchFeedOptions()
        self._check_limit(options.limit)
        results: Dict[str, List[FeedItem]] = {}
        chunk_size = self.config.batch_chunk_size
        for start in range(0, len(user_ids), chunk_size):
            chunk = list(user_ids[start:start + chunk_size])
            feeds = await asyncio.gather(*(self._batch_feed(uid, options) for uid in chunk))
            results.update(zip(chunk, feeds))
        return results

    async def _batch_feed(self, user_id: str, options: BatchFeedOptions) -> List[FeedItem]:
        try:
            feed = await self.generate_discovery_feed(
                user_id,
                limit=options.limit,
                weights=options.weights,
                experimental_features=options.experimental_features,
                force_refresh=options.force_refresh,
                diversity_boost=options.diversity_boost,
            )
        except Exception as e:
            logger.warning("[discovery] BATCH_USER_FAILED user_id=%s error=%s", user_id, e)
            return []
        if feed.strategy == FeedStrategy.ERROR:
            logger.warning("[discovery] BATCH_USER_FAILED user_id=%s error=%s", user_id, feed.error)
            return []
        return feed.items

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def invalidate_by_pattern(self, pattern: str) -> int:
        return await self.invalidation.invalidate_by_pattern(pattern)

    async def invalidate_by_event(self, event: InvalidationEvent) -> List[Tuple[str, int]]:
        return await self.invalidation.invalidate_by_event(event)

    async def get_active_rules(self) -> List[InvalidationRule]:
        return await self.invalidation.get_active_rules()

    async def add_invalidation_rule(self, rule: InvalidationRule) -> List[InvalidationRule]:
        return await self.invalidation.add_rule(rule)

    async def remove_invalidation_rule(self, pattern: str) -> List[InvalidationRule]:
        return await self.invalidation.remove_rule(pattern)

    def validate_pattern(self, pattern: str) -> bool:
        return self.invalidation.validate_pattern(pattern)

    def get_performance_summary(self) -> PerformanceSummary:
        return self.monitor.get_performance_summary()

    def get_session_analytics(self, user_id: str, limit: int = 10) -> List[DiscoverySession]:
        return self.monitor.get_session_analytics(user_id, limit)
