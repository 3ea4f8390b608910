"""
Vector index implementations: in-memory (local runs, tests) and Qdrant.

Both store one point per item: the embedding plus the item's metadata payload
(see ContentItem.to_metadata), optionally with a `saved_by` list of user ids.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models

from discovery.errors import UpstreamUnavailable
from discovery.interfaces import VectorMatch
from discovery.utils.vectors import cosine_similarity

logger = logging.getLogger(__name__)


def _payload_matches(payload: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for key, expected in filter.items():
        actual = payload.get(key)
        if isinstance(actual, (list, tuple, set)):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryVectorIndex:
    """Brute-force cosine search over a dict of points."""

    def __init__(self):
        self._points: Dict[str, Tuple[List[float], Dict[str, Any]]] = {}

    def __len__(self) -> int:
        return len(self._points)

    async def upsert(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        payload = dict(metadata)
        payload.setdefault("item_id", item_id)
        self._points[item_id] = (list(vector), payload)

    async def nearest_neighbors(
        self,
        query_vector: List[float],
        k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        filter = filter or {}
        exclude_author = filter.get("exclude_author_id")
        exclude_ids = set(filter.get("exclude_item_ids") or ())
        min_score = filter.get("min_score")

        matches = []
        for item_id, (vector, payload) in self._points.items():
            if item_id in exclude_ids:
                continue
            if exclude_author is not None and payload.get("author_id") == exclude_author:
                continue
            score = cosine_similarity(query_vector, vector)
            if min_score is not None and score < min_score:
                continue
            matches.append(VectorMatch(item_id=item_id, score=score, metadata=payload, vector=vector))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:k]

    async def search_by_metadata(self, filter: Dict[str, Any], limit: int) -> List[VectorMatch]:
        matches = [
            VectorMatch(item_id=item_id, metadata=payload, vector=vector)
            for item_id, (vector, payload) in self._points.items()
            if _payload_matches(payload, filter)
        ]
        return matches[:limit]


def point_id(item_id: str) -> str:
    """Qdrant point ids must be uint or UUID; derive a stable UUID from the item id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"discovery-item:{item_id}"))


class QdrantVectorIndex:
    """
    VectorIndex over a Qdrant collection (cosine distance).

    Client errors are converted to UpstreamUnavailable("vector_index", ...).
    """

    def __init__(
        self,
        qdrant_url: str,
        collection_name: str = "discovery_items",
        dimensions: int = 1024,
        timeout: float = 30.0,
        client: Optional[AsyncQdrantClient] = None,
    ):
        self.qdrant_url = qdrant_url
        self.collection_name = collection_name
        self.dimensions = dimensions
        self._client = client or AsyncQdrantClient(url=qdrant_url, timeout=timeout)
        self._collection_ready = False

    async def ensure_collection(self) -> None:
        if self._collection_ready:
            return
        try:
            if not await self._client.collection_exists(self.collection_name):
                await self._client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.dimensions,
                        distance=models.Distance.COSINE,
                    ),
                )
                logger.info("[qdrant] created collection %s (dim=%s)", self.collection_name, self.dimensions)
        except Exception as e:
            raise UpstreamUnavailable("vector_index", str(e)) from e
        self._collection_ready = True

    async def is_available(self) -> bool:
        try:
            await self._client.get_collections()
            return True
        except Exception:
            return False

    async def upsert(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        await self.ensure_collection()
        payload = dict(metadata)
        payload.setdefault("item_id", item_id)
        try:
            await self._client.upsert(
                collection_name=self.collection_name,
                points=[models.PointStruct(id=point_id(item_id), vector=list(vector), payload=payload)],
            )
        except Exception as e:
            raise UpstreamUnavailable("vector_index", str(e)) from e

    async def nearest_neighbors(
        self,
        query_vector: List[float],
        k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        await self.ensure_collection()
        filter = filter or {}
        must_not = []
        if filter.get("exclude_author_id") is not None:
            must_not.append(
                models.FieldCondition(key="author_id", match=models.MatchValue(value=filter["exclude_author_id"]))
            )
        if filter.get("exclude_item_ids"):
            must_not.append(
                models.FieldCondition(key="item_id", match=models.MatchAny(any=list(filter["exclude_item_ids"])))
            )
        try:
            response = await self._client.query_points(
                collection_name=self.collection_name,
                query=list(query_vector),
                limit=k,
                query_filter=models.Filter(must_not=must_not) if must_not else None,
                score_threshold=filter.get("min_score"),
                with_payload=True,
                with_vectors=True,
            )
        except Exception as e:
            raise UpstreamUnavailable("vector_index", str(e)) from e
        return [self._to_match(point, point.score) for point in response.points]

    async def search_by_metadata(self, filter: Dict[str, Any], limit: int) -> List[VectorMatch]:
        await self.ensure_collection()
        conditions = [
            models.FieldCondition(key=key, match=models.MatchValue(value=value))
            for key, value in filter.items()
        ]
        try:
            points, _ = await self._client.scroll(
                collection_name=self.collection_name,
                scroll_filter=models.Filter(must=conditions),
                limit=limit,
                with_payload=True,
                with_vectors=True,
            )
        except Exception as e:
            raise UpstreamUnavailable("vector_index", str(e)) from e
        return [self._to_match(point, 0.0) for point in points]

    @staticmethod
    def _to_match(point, score: float) -> VectorMatch:
        payload = dict(point.payload or {})
        vector = point.vector if isinstance(point.vector, list) else None
        return VectorMatch(
            item_id=str(payload.get("item_id", point.id)),
            score=float(score or 0.0),
            metadata=payload,
            vector=vector,
        )

    async def close(self) -> None:
        await self._client.close()
