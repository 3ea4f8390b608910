"""
End-to-end tests for RecommendationOrchestrator with in-memory collaborators.

Covers the personalized, recency, fallback and error feed paths, caching,
pagination, explanations, similar content, preference updates, batch mode and
session analytics.

Run:
    pytest tests/test_orchestrator.py -v
"""

import asyncio
import logging
from typing import List, Set

import pytest

from discovery import RecommendationOrchestrator
from discovery.cache.keys import preferences_key
from discovery.errors import InvalidInput, ItemNotFound, UpstreamUnavailable
from discovery.models import BatchFeedOptions, ContentItem, ContentQueryFilters, DiscoveryConfig, FeedStrategy
from discovery.utils.vectors import normalize
from discovery_api.services import InMemoryCacheBackend, InMemoryContentStore, InMemoryVectorIndex

from tests.fakes import FailingCacheBackend, FixedClock, FlakyContentStore, make_item


def _ids(feed):
    return [feed_item.item.id for feed_item in feed.items]


def _build(store, cache_backend=None, config=None, index=None, clock=None):
    index = index if index is not None else InMemoryVectorIndex()
    for item in store.items.values():
        if item.embedding_vector:
            metadata = item.to_metadata()
            metadata["saved_by"] = store.saved_by(item.id)
            asyncio.run(index.upsert(item.id, item.embedding_vector, metadata))
    return RecommendationOrchestrator(
        store,
        index,
        cache_backend,
        config=config,
        clock=clock or FixedClock(),
    )


def _catalog():
    return [
        make_item("close", author_id="a", hours_ago=3, vector=[1.0, 0.0], hashtags=["python"]),
        make_item("near", author_id="b", hours_ago=2, vector=[0.9, 0.3], hashtags=["ml"]),
        make_item("far", author_id="c", hours_ago=1, vector=[0.0, 1.0], hashtags=["cooking"]),
        make_item("mid", author_id="d", hours_ago=4, vector=[0.6, 0.6]),
        make_item("old", author_id="e", hours_ago=30, vector=[0.7, 0.2]),
        make_item("history", author_id="f", hours_ago=50, vector=[1.0, 0.05]),
        make_item("mine", author_id="u1", hours_ago=1.5, vector=[1.0, 0.0]),
    ]


class TestDiscoveryFeed:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.store = InMemoryContentStore(_catalog())
        self.store.save("u1", "history")
        self.store.mark_seen("u1", "history")
        self.backend = InMemoryCacheBackend()
        self.engine = _build(self.store, self.backend)

    def _feed(self, user_id="u1", **kwargs):
        return asyncio.run(self.engine.generate_discovery_feed(user_id, **kwargs))

    def _feed_keys(self, user_id="u1"):
        return asyncio.run(self.backend.list_keys(f"discovery_feed:{user_id}:"))

    def test_personalized_feed(self):
        feed = self._feed(limit=10)
        assert feed.strategy == FeedStrategy.PERSONALIZED
        assert feed.cached is False
        assert "mine" not in _ids(feed)
        assert "history" not in _ids(feed)
        assert _ids(feed)[0] == "close"
        finals = [fi.final_score for fi in feed.items]
        assert finals == sorted(finals, reverse=True)
        assert all(fi.is_scored for fi in feed.items)

    def test_scores_in_range(self):
        for fi in self._feed(limit=10).items:
            for value in (fi.similarity_score, fi.engagement_score, fi.temporal_score, fi.diversity_score):
                assert 0.0 <= value <= 1.0

    def test_cached_feed_is_identical(self):
        first = self._feed(limit=3)
        second = self._feed(limit=3)
        assert second.cached is True
        assert _ids(second) == _ids(first)
        assert [fi.final_score for fi in second.items] == [fi.final_score for fi in first.items]

    def test_force_refresh_bypasses_cache(self):
        self._feed(limit=3)
        refreshed = self._feed(limit=3, force_refresh=True)
        assert refreshed.cached is False

    def test_cache_ttl_depends_on_options(self):
        self._feed(limit=3)
        [key] = self._feed_keys()
        assert self.backend.ttl(key) == pytest.approx(180, abs=1)

        self._feed(limit=4, experimental_features=False)
        [stable] = [k for k in self._feed_keys() if k != key]
        assert self.backend.ttl(stable) == pytest.approx(600, abs=1)

    def test_custom_weights_get_their_own_entry(self):
        default = self._feed(limit=3, experimental_features=False)
        recency_heavy = self._feed(limit=3, experimental_features=False, weights={"recency": 5.0, "relevance": 0.0})
        assert recency_heavy.cached is False
        assert len(self._feed_keys()) == 2
        assert _ids(recency_heavy)[0] == "far"
        assert _ids(default)[0] == "close"

    def test_recency_feed_for_new_user(self):
        feed = self._feed("newbie", limit=10)
        assert feed.strategy == FeedStrategy.RECENCY
        assert _ids(feed) == ["far", "mine", "near", "close", "mid", "old", "history"]
        assert all(fi.similarity_score == 0.0 for fi in feed.items)

    def test_cursor_pagination(self):
        pages, cursor = [], None
        while True:
            feed = self._feed("newbie", limit=3, cursor=cursor)
            pages.append(_ids(feed))
            cursor = feed.next_cursor
            if not feed.has_more:
                break
        flat = [item_id for page in pages for item_id in page]
        assert len(flat) == len(set(flat))
        assert flat[:3] == ["far", "mine", "near"]
        assert set(flat) <= {"far", "mine", "near", "close", "mid", "old", "history"}

    def test_unknown_cursor_restarts(self):
        feed = self._feed("newbie", limit=2, cursor="does-not-exist")
        assert _ids(feed) == ["far", "mine"]
        [session] = self.engine.get_session_analytics("newbie", limit=1)
        assert any("FEED_UNKNOWN_CURSOR" in warning for warning in session.metrics.warnings)

    def test_explanations(self):
        feed = self._feed(limit=3, include_explanations=True)
        for fi in feed.items:
            assert fi.explanation is not None
            assert fi.explanation.item_id == fi.item.id
        cached = self._feed(limit=3, include_explanations=True)
        assert cached.cached is True
        assert all(fi.explanation is not None for fi in cached.items)

    def test_explanations_not_included_by_default(self):
        assert all(fi.explanation is None for fi in self._feed(limit=3).items)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"user_id": ""},
            {"user_id": "   "},
            {"limit": 0},
            {"limit": 101},
            {"weights": {"relevance": -1.0}},
            {"diversity_boost": -0.5},
        ],
    )
    def test_invalid_input(self, kwargs):
        args = {"user_id": "u1", **kwargs}
        with pytest.raises(InvalidInput):
            asyncio.run(self.engine.generate_discovery_feed(**args))

    def test_works_without_cache(self):
        engine = _build(InMemoryContentStore(_catalog()))
        feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        again = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.PERSONALIZED
        assert again.cached is False
        assert _ids(again) == _ids(feed)

    def test_failing_cache_is_transparent(self):
        backend = FailingCacheBackend()
        store = InMemoryContentStore(_catalog())
        store.save("u1", "history")
        engine = _build(store, backend)
        feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.PERSONALIZED
        assert backend.calls > 0

    def test_update_preferences_purges_feeds(self):
        self._feed(limit=3)
        assert self._feed_keys()
        profile = asyncio.run(self.engine.update_user_preferences("u1", ["far"], ["like"]))
        assert profile.user_id == "u1"
        assert self._feed_keys() == []
        assert asyncio.run(self.backend.get(preferences_key("u1"))) is not None
        assert self._feed(limit=3).cached is False

    def test_reset_preferences(self):
        asyncio.run(self.engine.update_user_preferences("u1", ["far"], ["save"]))
        self._feed(limit=3)
        asyncio.run(self.engine.reset_user_preferences("u1"))
        assert asyncio.run(self.backend.get(preferences_key("u1"))) is None
        assert self._feed_keys() == []
        recomputed = asyncio.run(self.engine.get_user_preferences("u1"))
        assert recomputed.vector == pytest.approx(normalize([3.5, 0.1]))

    def test_performance_summary_and_sessions(self):
        self._feed(limit=3)
        self._feed(limit=3)
        summary = self.engine.get_performance_summary()
        assert summary.total_sessions == 2
        assert summary.cache_usage_rate == pytest.approx(0.5)
        assert summary.error_rate == 0.0
        assert summary.average_results == pytest.approx(3.0)

        sessions = self.engine.get_session_analytics("u1")
        assert [s.cached for s in sessions] == [False, True]
        first = sessions[0]
        assert first.phases[0].value == "start"
        assert first.phases[-1].value == "complete"
        assert "scoring" in [p.value for p in first.phases]
        assert first.metrics.candidates_found >= 3


class TestFallback:

    def test_candidate_failure_serves_fallback(self, caplog):
        store = FlakyContentStore(_catalog(), failures={"candidate_query"})
        store.mark_seen("u1", "far")
        engine = _build(store, InMemoryCacheBackend())
        with caplog.at_level(logging.WARNING, logger="discovery.stages.orchestrator"):
            feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.FALLBACK
        assert _ids(feed) == ["far", "near", "close"]
        assert feed.has_more is True
        assert all(not fi.is_scored for fi in feed.items)
        assert all(fi.final_score is None for fi in feed.items)
        assert "[discovery] FEED_FALLBACK user_id=u1" in caplog.text
        assert engine.get_performance_summary().fallback_rate == 1.0

    def test_fallback_not_cached(self):
        store = FlakyContentStore(_catalog(), failures={"candidate_query"})
        backend = InMemoryCacheBackend()
        engine = _build(store, backend)
        asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert asyncio.run(backend.list_keys("discovery_feed:")) == []

    def test_scoring_context_failure_serves_fallback(self):
        store = FlakyContentStore(_catalog(), failures={"get_recent_hashtags"})
        store.save("u1", "history")
        engine = _build(store, InMemoryCacheBackend())
        feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.FALLBACK
        summary = engine.get_performance_summary()
        assert summary.fallback_rate == 1.0
        assert summary.error_rate == 1.0

    def test_error_feed_when_fallback_fails(self):
        store = FlakyContentStore(_catalog(), failures={"query_visible_items"})
        engine = _build(store, InMemoryCacheBackend())
        feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.ERROR
        assert feed.items == []
        assert "unavailable" in feed.error
        [session] = engine.get_session_analytics("u1")
        assert session.phase.value == "error"

    def test_empty_catalog_falls_back_to_empty_feed(self):
        engine = _build(InMemoryContentStore())
        feed = asyncio.run(engine.generate_discovery_feed("u1", limit=3))
        assert feed.strategy == FeedStrategy.FALLBACK
        assert feed.items == []
        assert feed.has_more is False


class TestSimilarContent:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.store = InMemoryContentStore([
            make_item("ref", author_id="a", vector=[1.0, 0.0]),
            make_item("twin", author_id="b", hours_ago=5, vector=[0.99, 0.05]),
            make_item("fresh-twin", author_id="c", hours_ago=1, vector=[0.98, 0.1]),
            make_item("own-twin", author_id="u1", vector=[1.0, 0.01]),
            make_item("blocked-twin", author_id="troll", vector=[1.0, 0.02]),
            make_item("private-twin", author_id="stranger", vector=[1.0, 0.03], is_private=True),
            make_item("unrelated", author_id="d", vector=[0.0, 1.0]),
            make_item("no-vector", author_id="d"),
        ])
        self.store.block("u1", "troll")
        self.engine = _build(self.store)

    def test_similar_items(self):
        results = asyncio.run(self.engine.find_similar_content("ref", "u1", limit=5))
        assert [r.item.id for r in results] == ["fresh-twin", "twin"]
        assert [r.rank for r in results] == [1, 2]
        for r in results:
            assert r.similarity_score >= 0.7
            assert r.final_score == pytest.approx(
                0.7 * r.similarity_score + 0.2 * r.engagement_score + 0.1 * r.temporal_score
            )

    def test_limit(self):
        results = asyncio.run(self.engine.find_similar_content("ref", "u1", limit=1))
        assert len(results) == 1
        assert results[0].rank == 1

    def test_unknown_item(self):
        with pytest.raises(ItemNotFound):
            asyncio.run(self.engine.find_similar_content("ghost", "u1"))

    def test_reference_without_embedding(self):
        assert asyncio.run(self.engine.find_similar_content("no-vector", "u1")) == []

    def test_invalid_user(self):
        with pytest.raises(InvalidInput):
            asyncio.run(self.engine.find_similar_content("ref", ""))


class _PickyStore(InMemoryContentStore):
    """Fails every read made on behalf of the listed users."""

    def __init__(self, items: List[ContentItem], broken_users: Set[str]):
        super().__init__(items)
        self.broken_users = broken_users

    async def get_blocked_user_ids(self, user_id: str) -> Set[str]:
        if user_id in self.broken_users:
            raise UpstreamUnavailable("content_store", f"shard for {user_id} is down")
        return await super().get_blocked_user_ids(user_id)

    async def query_visible_items(self, viewer_id: str, filters: ContentQueryFilters) -> List[ContentItem]:
        if viewer_id in self.broken_users:
            raise UpstreamUnavailable("content_store", f"shard for {viewer_id} is down")
        return await super().query_visible_items(viewer_id, filters)


class _ConcurrencyTrackingStore(InMemoryContentStore):
    """Holds each candidate query briefly and records how many overlap."""

    def __init__(self, items):
        super().__init__(items)
        self.in_flight = 0
        self.peak = 0

    async def query_visible_items(self, viewer_id: str, filters: ContentQueryFilters) -> List[ContentItem]:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().query_visible_items(viewer_id, filters)
        finally:
            self.in_flight -= 1


class _HangingStore(InMemoryContentStore):
    """Candidate queries never complete."""

    async def query_visible_items(self, viewer_id: str, filters: ContentQueryFilters) -> List[ContentItem]:
        await asyncio.Event().wait()
        return []


class TestCancellation:

    def test_cancelled_requests_close_their_sessions(self):
        engine = _build(_HangingStore(_catalog()), InMemoryCacheBackend())

        async def run():
            tasks = [
                asyncio.ensure_future(engine.generate_discovery_feed(f"u{i}", limit=3))
                for i in range(5)
            ]
            await asyncio.sleep(0.01)
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            assert all(isinstance(r, asyncio.CancelledError) for r in results)

        asyncio.run(run())
        assert engine.monitor.open_sessions == 0
        summary = engine.get_performance_summary()
        assert summary.total_sessions == 5
        assert summary.error_rate == 1.0
        session = engine.get_session_analytics("u0")[-1]
        assert session.phase.value == "error"
        assert session.metrics.errors

    def test_completed_request_is_not_marked_abandoned(self):
        engine = _build(InMemoryContentStore(_catalog()), InMemoryCacheBackend())
        asyncio.run(engine.generate_discovery_feed("u2", limit=3))
        assert engine.monitor.open_sessions == 0
        session = engine.get_session_analytics("u2")[-1]
        assert session.phase.value == "complete"
        assert session.metrics.errors == []


class TestBatch:

    def test_concurrency_bounded_by_chunk_size(self):
        store = _ConcurrencyTrackingStore(_catalog())
        engine = _build(store, InMemoryCacheBackend(), config=DiscoveryConfig(batch_chunk_size=3))
        users = [f"reader{i}" for i in range(8)]
        feeds = asyncio.run(engine.batch_generate_discovery_feeds(users, BatchFeedOptions(limit=2)))
        assert list(feeds) == users
        assert all(len(items) == 2 for items in feeds.values())
        assert 1 < store.peak <= 3

    def test_failures_are_isolated(self):
        store = _PickyStore(_catalog(), broken_users={"bad"})
        engine = _build(store, InMemoryCacheBackend(), config=DiscoveryConfig(batch_chunk_size=2))
        users = ["u1", "bad", "u2", "u3", "u4"]
        feeds = asyncio.run(engine.batch_generate_discovery_feeds(users, BatchFeedOptions(limit=2)))
        assert list(feeds) == users
        assert feeds["bad"] == []
        for user_id in ("u1", "u2", "u3", "u4"):
            assert len(feeds[user_id]) == 2

    def test_invalid_limit(self):
        engine = _build(InMemoryContentStore(_catalog()))
        with pytest.raises(InvalidInput):
            asyncio.run(engine.batch_generate_discovery_feeds(["u1"], BatchFeedOptions(limit=500)))

    def test_empty_batch(self):
        engine = _build(InMemoryContentStore(_catalog()))
        assert asyncio.run(engine.batch_generate_discovery_feeds([])) == {}
