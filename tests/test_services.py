"""
Collaborator implementation tests: cache backends, vector indexes, content
store and embedding providers.

Run:
    pytest tests/test_services.py -v
"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError
from qdrant_client import AsyncQdrantClient
from redis.exceptions import ConnectionError as RedisConnectionError

from discovery.errors import CacheUnavailable, UpstreamUnavailable
from discovery.models import ContentQueryFilters, ContentType
from discovery_api.services import (
    CachedEmbeddingProvider,
    InMemoryCacheBackend,
    InMemoryContentStore,
    InMemoryVectorIndex,
    OpenAIEmbeddingProvider,
    QdrantVectorIndex,
    RedisCacheBackend,
    point_id,
)

from tests.fakes import NOW, FakeEmbeddingProvider, FakeRedis, make_item


class _Tick:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryCacheBackend:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.clock = _Tick()
        self.cache = InMemoryCacheBackend(clock=self.clock)

    def test_set_get_delete(self):
        asyncio.run(self.cache.set("k", "v"))
        assert asyncio.run(self.cache.get("k")) == "v"
        assert asyncio.run(self.cache.delete("k")) is True
        assert asyncio.run(self.cache.delete("k")) is False
        assert asyncio.run(self.cache.get("k")) is None

    def test_ttl_expiry(self):
        asyncio.run(self.cache.set("k", "v", ttl_seconds=60))
        assert self.cache.ttl("k") == 60
        self.clock.now += 59
        assert asyncio.run(self.cache.get("k")) == "v"
        self.clock.now += 1
        assert asyncio.run(self.cache.get("k")) is None

    def test_no_ttl_never_expires(self):
        asyncio.run(self.cache.set("k", "v"))
        self.clock.now += 10**9
        assert asyncio.run(self.cache.get("k")) == "v"
        assert self.cache.ttl("k") is None

    def test_list_keys_by_prefix_skips_expired(self):
        asyncio.run(self.cache.set("feed:1", "a", 10))
        asyncio.run(self.cache.set("feed:2", "b", 100))
        asyncio.run(self.cache.set("other", "c"))
        self.clock.now += 50
        assert asyncio.run(self.cache.list_keys("feed:")) == ["feed:2"]
        assert sorted(asyncio.run(self.cache.list_keys())) == ["feed:2", "other"]


class _BrokenRedis(FakeRedis):
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def ping(self):
        raise RedisConnectionError("connection refused")


class TestRedisCacheBackend:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.redis = FakeRedis()
        self.cache = RedisCacheBackend("redis://localhost:6379/0", client=self.redis)

    def test_set_with_ttl(self):
        asyncio.run(self.cache.set("k", "v", 180))
        assert self.redis.data["k"] == "v"
        assert self.redis.expiry["k"] == 180
        assert asyncio.run(self.cache.get("k")) == "v"

    def test_set_without_ttl(self):
        asyncio.run(self.cache.set("k", "v"))
        assert self.redis.expiry["k"] is None

    def test_delete(self):
        asyncio.run(self.cache.set("k", "v"))
        assert asyncio.run(self.cache.delete("k")) is True
        assert asyncio.run(self.cache.delete("k")) is False

    def test_list_keys(self):
        for key in ("discovery_feed:u1:a", "discovery_feed:u2:a", "user_preferences:u1"):
            asyncio.run(self.cache.set(key, "x"))
        assert sorted(asyncio.run(self.cache.list_keys("discovery_feed:"))) == [
            "discovery_feed:u1:a",
            "discovery_feed:u2:a",
        ]

    def test_ping(self):
        assert asyncio.run(self.cache.ping()) is True

    def test_errors_become_cache_unavailable(self):
        cache = RedisCacheBackend("redis://localhost:6379/0", client=_BrokenRedis())
        with pytest.raises(CacheUnavailable):
            asyncio.run(cache.get("k"))
        assert asyncio.run(cache.ping()) is False


class TestInMemoryVectorIndex:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.index = InMemoryVectorIndex()
        for item_id, author, vector, saved_by in (
            ("a", "x", [1.0, 0.0], ["u1"]),
            ("b", "y", [0.8, 0.6], []),
            ("c", "u1", [1.0, 0.1], ["u2"]),
            ("d", "z", [0.0, 1.0], ["u1", "u2"]),
        ):
            asyncio.run(self.index.upsert(item_id, vector, {"author_id": author, "saved_by": saved_by}))

    def test_nearest_neighbors_ordered(self):
        matches = asyncio.run(self.index.nearest_neighbors([1.0, 0.0], 3))
        assert [m.item_id for m in matches] == ["a", "c", "b"]
        assert matches[0].score == pytest.approx(1.0)

    def test_filters(self):
        matches = asyncio.run(self.index.nearest_neighbors(
            [1.0, 0.0],
            10,
            {"exclude_author_id": "u1", "exclude_item_ids": ["a"], "min_score": 0.5},
        ))
        assert [m.item_id for m in matches] == ["b"]

    def test_search_by_metadata_list_contains(self):
        matches = asyncio.run(self.index.search_by_metadata({"saved_by": "u1"}, 10))
        assert sorted(m.item_id for m in matches) == ["a", "d"]

    def test_search_by_metadata_scalar_and_limit(self):
        assert [m.item_id for m in asyncio.run(self.index.search_by_metadata({"author_id": "y"}, 10))] == ["b"]
        assert len(asyncio.run(self.index.search_by_metadata({}, 2))) == 2

    def test_upsert_replaces(self):
        asyncio.run(self.index.upsert("a", [0.0, 1.0], {"author_id": "x"}))
        assert len(self.index) == 4
        [match] = asyncio.run(self.index.search_by_metadata({"item_id": "a"}, 1))
        assert match.vector == [0.0, 1.0]


class TestQdrantVectorIndex:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.index = QdrantVectorIndex(
            "http://unused:6333",
            collection_name="test_items",
            dimensions=2,
            client=AsyncQdrantClient(location=":memory:"),
        )

    def _run(self, coro_factory):
        async def scenario():
            for item in (
                make_item("a", author_id="x", vector=[1.0, 0.0]),
                make_item("b", author_id="u1", vector=[0.9, 0.1]),
                make_item("c", author_id="y", vector=[0.0, 1.0]),
            ):
                await self.index.upsert(item.id, item.embedding_vector, item.to_metadata())
            return await coro_factory()

        return asyncio.run(scenario())

    def test_nearest_neighbors_with_filters(self):
        matches = self._run(lambda: self.index.nearest_neighbors(
            [1.0, 0.0], 5, {"exclude_author_id": "u1", "min_score": 0.5}
        ))
        assert [m.item_id for m in matches] == ["a"]
        assert matches[0].metadata["author_id"] == "x"

    def test_exclude_item_ids(self):
        matches = self._run(lambda: self.index.nearest_neighbors([1.0, 0.0], 5, {"exclude_item_ids": ["a"]}))
        assert [m.item_id for m in matches][0] == "b"
        assert "a" not in [m.item_id for m in matches]

    def test_search_by_metadata(self):
        matches = self._run(lambda: self.index.search_by_metadata({"author_id": "y"}, 10))
        assert [m.item_id for m in matches] == ["c"]
        assert matches[0].vector == pytest.approx([0.0, 1.0])

    def test_point_id_is_stable_uuid(self):
        assert point_id("a") == point_id("a")
        assert point_id("a") != point_id("b")


class TestInMemoryContentStore:

    @pytest.fixture(autouse=True)
    def setup(self):
        self.store = InMemoryContentStore([
            make_item("text-new", author_id="a", hours_ago=1),
            make_item("image-old", author_id="b", hours_ago=48, content_type=ContentType.IMAGE),
            make_item("mine", author_id="u1", hours_ago=2),
        ])

    def _query(self, **filters):
        return [i.id for i in asyncio.run(self.store.query_visible_items("u1", ContentQueryFilters(**filters)))]

    def test_default_query_excludes_own(self):
        assert self._query() == ["text-new", "image-old"]

    def test_include_own(self):
        assert self._query(exclude_own=False) == ["text-new", "mine", "image-old"]

    def test_min_created_at_and_content_types(self):
        assert self._query(min_created_at=NOW.replace(hour=0)) == ["text-new"]
        assert self._query(content_types=[ContentType.IMAGE]) == ["image-old"]

    def test_limit(self):
        assert self._query(limit=1) == ["text-new"]

    def test_blocking_is_bidirectional(self):
        self.store.block("b", "u1")
        assert asyncio.run(self.store.get_blocked_user_ids("u1")) == {"b"}
        assert self._query() == ["text-new"]

    def test_save_updates_recent_topics(self):
        self.store.add_item(make_item("tagged", hashtags=["#Python", "ml"]))
        self.store.save("u1", "tagged")
        assert asyncio.run(self.store.get_recent_hashtags("u1", 10)) == ["python", "ml"]
        assert self.store.saved_by("tagged") == ["u1"]

    def test_from_json(self, tmp_path):
        path = tmp_path / "content.json"
        path.write_text(json.dumps({
            "items": [
                {"id": "p1", "author_id": "a", "created_at": "2026-03-01T10:00:00Z", "hashtags": ["go"]},
                {"id": "p2", "author_id": "b", "created_at": "2026-03-01T11:00:00Z", "is_private": True},
            ],
            "follows": {"u1": ["b"]},
            "blocks": {"u2": ["a"]},
            "seen": {"u1": ["p1"]},
            "saves": {"u1": ["p1"]},
        }))
        store = InMemoryContentStore.from_json(path)
        assert sorted(store.items) == ["p1", "p2"]
        assert asyncio.run(store.get_following_ids("u1")) == {"b"}
        assert asyncio.run(store.get_seen_item_ids("u1")) == {"p1"}
        assert asyncio.run(store.get_recent_hashtags("u1", 5)) == ["go"]
        visible = asyncio.run(store.query_visible_items("u2", ContentQueryFilters()))
        assert visible == []


class _FakeEmbeddings:
    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []

    async def create(self, model, input, dimensions):
        self.requests.append((model, input, dimensions))
        if self.fail:
            raise OpenAIError("rate limited")
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])


class TestEmbeddingProviders:

    def test_openai_provider(self):
        embeddings = _FakeEmbeddings()
        provider = OpenAIEmbeddingProvider(
            api_key="test", dimensions=3, client=SimpleNamespace(embeddings=embeddings)
        )
        assert asyncio.run(provider.embed("hello")) == [0.1, 0.2, 0.3]
        assert embeddings.requests == [("text-embedding-3-small", "hello", 3)]

    def test_openai_errors_become_upstream_unavailable(self):
        provider = OpenAIEmbeddingProvider(
            api_key="test", client=SimpleNamespace(embeddings=_FakeEmbeddings(fail=True))
        )
        with pytest.raises(UpstreamUnavailable):
            asyncio.run(provider.embed("hello"))

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(UpstreamUnavailable):
            asyncio.run(OpenAIEmbeddingProvider().embed("hello"))

    def test_cached_provider_retries_then_caches(self):
        inner = FakeEmbeddingProvider({"hello": [1.0, 0.0]}, fail_times=2)
        provider = CachedEmbeddingProvider(inner, max_retries=3, retry_delay=0)
        assert asyncio.run(provider.embed("hello")) == [1.0, 0.0]
        assert provider.calls == 3
        assert asyncio.run(provider.embed("hello")) == [1.0, 0.0]
        assert len(inner.calls) == 3
        assert len(provider) == 1

    def test_cached_provider_gives_up(self):
        inner = FakeEmbeddingProvider({"hello": [1.0]}, fail_times=5)
        provider = CachedEmbeddingProvider(inner, max_retries=2, retry_delay=0)
        with pytest.raises(UpstreamUnavailable):
            asyncio.run(provider.embed("hello"))
        assert len(inner.calls) == 2
        assert len(provider) == 0
