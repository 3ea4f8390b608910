"""
Collaborator interfaces consumed by the discovery engine.

Four narrow async Protocols: content store, vector index, cache backend and
embedding provider. Implementations live in discovery_api.services (in-memory
for local runs and tests, Qdrant / Redis / OpenAI in production). Adapters
convert client exceptions into UpstreamUnavailable or CacheUnavailable.
"""

from typing import Any, Dict, List, Optional, Protocol, Set

from pydantic import BaseModel

from .models.content import ContentItem, ContentQueryFilters


class VectorMatch(BaseModel):
    """One vector index hit: id, cosine score, stored payload and (optionally) the vector."""

    item_id: str
    score: float = 0.0
    metadata: Dict[str, Any] = {}
    vector: Optional[List[float]] = None


class ContentStore(Protocol):
    """Read-only access to posts and the social graph."""

    async def query_visible_items(
        self,
        viewer_id: str,
        filters: ContentQueryFilters,
    ) -> List[ContentItem]:
        """
        Items visible to viewer_id, newest first, at most filters.limit.
        Honors exclude_own / exclude_blocked / exclude_seen and the optional
        min_created_at / content_types filters. Private items are only
        returned when the viewer follows the author.
        """
        ...

    async def get_item(self, item_id: str) -> Optional[ContentItem]:
        """Return the item or None when it does not exist."""
        ...

    async def get_blocked_user_ids(self, user_id: str) -> Set[str]:
        """Users blocked by user_id or blocking user_id (both directions)."""
        ...

    async def get_following_ids(self, user_id: str) -> Set[str]:
        """Users that user_id follows."""
        ...

    async def get_seen_item_ids(self, user_id: str) -> Set[str]:
        """Items user_id has already seen."""
        ...

    async def get_recent_hashtags(self, user_id: str, limit: int) -> List[str]:
        """Hashtags from the user's most recent interactions, most recent first."""
        ...


class VectorIndex(Protocol):
    """Per-item embeddings with nearest-neighbour and metadata search."""

    async def upsert(
        self,
        item_id: str,
        vector: List[float],
        metadata: Dict[str, Any],
    ) -> None:
        """Insert or replace the vector and payload for item_id."""
        ...

    async def nearest_neighbors(
        self,
        query_vector: List[float],
        k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """
        Top-k matches by cosine similarity, best first.

        Supported filter keys: exclude_author_id, exclude_item_ids, min_score.
        """
        ...

    async def search_by_metadata(
        self,
        filter: Dict[str, Any],
        limit: int,
    ) -> List[VectorMatch]:
        """Matches whose payload equals filter on every key (list payloads: contains)."""
        ...


class CacheBackend(Protocol):
    """Key-value store with TTL. Values are JSON strings."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store value; ttl_seconds=None means no expiry."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True when something was removed."""
        ...

    async def list_keys(self, prefix: str = "") -> List[str]:
        """All live keys starting with prefix."""
        ...


class EmbeddingProvider(Protocol):
    """Opaque text -> fixed-length vector service."""

    async def embed(self, content: str) -> List[float]:
        ...
