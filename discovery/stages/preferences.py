"""
Preference learning: build and update each user's preference profile.

The profile is a normalized vector in embedding space plus per-content-type
affinities. It is computed from saved and created posts on a cache miss and
moved slowly toward new interactions by update_preferences, which is the only
writer. Writes are last-writer-wins.
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from ..cache.keys import embedding_key, preferences_key
from ..cache.layer import CacheLayer
from ..errors import InvalidInput, NoValidSignal
from ..interfaces import ContentStore, EmbeddingProvider, VectorIndex, VectorMatch
from ..models.config import DiscoveryConfig, resolve_config
from ..models.content import ContentItem
from ..models.preferences import (
    DEFAULT_CONTENT_TYPE_AFFINITY,
    InteractionType,
    UserPreferenceProfile,
)
from ..utils.vectors import interpolate, normalize, weighted_centroid

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def update_affinities(
    current: Dict[str, float],
    content_types: Sequence[str],
    rate: float,
) -> Dict[str, float]:
    """
    Move affinities toward the interaction mix.

    target_t = count_t / max_count; new_t = old_t * (1 - rate) + target_t * rate,
    with old_t defaulting to 0.5. Types absent from the interactions drift toward 0.
    """
    if not content_types:
        return dict(current)
    counts = Counter(content_types)
    max_count = max(counts.values())
    updated = {}
    for content_type in set(current) | set(counts):
        target = counts.get(content_type, 0) / max_count
        old = current.get(content_type, DEFAULT_CONTENT_TYPE_AFFINITY)
        updated[content_type] = min(1.0, max(0.0, old * (1.0 - rate) + target * rate))
    return updated


def _validate_interactions(
    item_ids: Sequence[str],
    interaction_types: Sequence[str],
    weights: Optional[Sequence[float]],
) -> List[InteractionType]:
    if not item_ids:
        raise InvalidInput("update_preferences requires at least one item id")
    if len(item_ids) != len(interaction_types):
        raise InvalidInput(
            f"Got {len(item_ids)} item ids but {len(interaction_types)} interaction types"
        )
    if weights is not None:
        if len(weights) != len(item_ids):
            raise InvalidInput(f"Got {len(weights)} weights for {len(item_ids)} item ids")
        if any(w < 0 for w in weights):
            raise InvalidInput("Interaction weights must be non-negative")
    types = []
    for raw in interaction_types:
        try:
            types.append(InteractionType(raw))
        except ValueError:
            raise InvalidInput(f"Unknown interaction type: {raw!r}") from None
    return types


class PreferenceLearner:
    """Owns user preference profiles: cache-backed reads, slow interpolated updates."""

    def __init__(
        self,
        content_store: ContentStore,
        vector_index: VectorIndex,
        cache: CacheLayer,
        embedding_provider: Optional[EmbeddingProvider] = None,
        config: Optional[DiscoveryConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = content_store
        self._index = vector_index
        self._cache = cache
        self._embedder = embedding_provider
        self._config = resolve_config(config)
        self._clock = clock

    # -------------------------------------------------------------------------
    # Profile reads
    # -------------------------------------------------------------------------

    async def get_or_compute_profile(self, user_id: str) -> Optional[UserPreferenceProfile]:
        """Cached profile, else one computed from history (cached on success). None on cold start."""
        cached = await self._cache.get(preferences_key(user_id))
        if cached is not None:
            try:
                return UserPreferenceProfile.model_validate(cached)
            except ValidationError as e:
                logger.warning("[preferences] CACHED_PROFILE_INVALID user_id=%s error=%s", user_id, e)

        profile = await self.compute_profile(user_id)
        if profile is not None:
            await self._store_profile(profile)
        return profile

    async def compute_profile(self, user_id: str) -> Optional[UserPreferenceProfile]:
        """
        Weighted centroid of saved posts (weight 2.0) and created posts (weight 1.5).

        Returns None when the user has no history with usable embeddings.
        """
        config = self._config
        saved, created = await asyncio.gather(
            self._index.search_by_metadata({"saved_by": user_id}, config.saved_posts_limit),
            self._index.search_by_metadata({"author_id": user_id}, config.created_posts_limit),
        )
        history = [(m, config.saved_post_weight) for m in saved]
        history += [(m, config.created_post_weight) for m in created]
        if not history:
            logger.debug("[preferences] COLD_START user_id=%s no history", user_id)
            return None

        vectors = await asyncio.gather(*(self._match_vector(m) for m, _ in history))
        pairs = [(v, w) for v, (_, w) in zip(vectors, history) if v]
        pairs = _same_dimension(pairs, None)
        if not pairs:
            logger.debug("[preferences] COLD_START user_id=%s no usable embeddings", user_id)
            return None

        centroid = weighted_centroid([v for v, _ in pairs], [w for _, w in pairs])
        content_types = [
            str(m.metadata["content_type"]) for m, _ in history if m.metadata.get("content_type")
        ]
        return UserPreferenceProfile(
            user_id=user_id,
            vector=normalize(centroid),
            content_type_affinities=update_affinities({}, content_types, 1.0),
            last_updated=self._clock(),
        )

    # -------------------------------------------------------------------------
    # Profile writes
    # -------------------------------------------------------------------------

    async def update_preferences(
        self,
        user_id: str,
        item_ids: Sequence[str],
        interaction_types: Sequence[str],
        weights: Optional[Sequence[float]] = None,
    ) -> UserPreferenceProfile:
        """
        Interpolate the profile toward the weighted centroid of the interacted items.

        Raises InvalidInput on malformed arguments and NoValidSignal when none of
        the items has a usable embedding (the stored profile is left untouched).
        """
        types = _validate_interactions(item_ids, interaction_types, weights)
        if weights is None:
            weights = [self._config.interaction_weights.get(t.value, 1.0) for t in types]

        items = await asyncio.gather(*(self._store.get_item(item_id) for item_id in item_ids))
        vectors = await asyncio.gather(
            *(self.resolve_embedding(item_id, item) for item_id, item in zip(item_ids, items))
        )
        current = await self.get_or_compute_profile(user_id)

        dimension = len(current.vector) if current is not None and current.vector else None
        pairs = [(v, w) for v, w in zip(vectors, weights) if v]
        pairs = _same_dimension(pairs, dimension)
        if not pairs:
            raise NoValidSignal(f"No valid embeddings found for {len(item_ids)} interacted items")

        centroid = weighted_centroid([v for v, _ in pairs], [w for _, w in pairs])
        if current is not None and len(current.vector) == len(centroid):
            vector = normalize(interpolate(current.vector, centroid, self._config.learning_rate))
        else:
            vector = normalize(centroid)

        content_types = [item.content_type.value for item in items if item is not None]
        affinities = update_affinities(
            current.content_type_affinities if current is not None else {},
            content_types,
            self._config.affinity_learning_rate,
        )
        profile = UserPreferenceProfile(
            user_id=user_id,
            vector=vector,
            content_type_affinities=affinities,
            last_updated=self._clock(),
        )
        await self._store_profile(profile)
        logger.info(
            "[preferences] UPDATED user_id=%s interactions=%s used=%s",
            user_id, len(item_ids), len(pairs),
        )
        return profile

    async def reset_preferences(self, user_id: str) -> bool:
        """Drop the cached profile; the next read recomputes it from history."""
        return await self._cache.delete(preferences_key(user_id))

    async def _store_profile(self, profile: UserPreferenceProfile) -> None:
        await self._cache.set(
            preferences_key(profile.user_id),
            profile.model_dump(mode="json"),
            self._config.preference_cache_ttl,
        )

    # -------------------------------------------------------------------------
    # Embedding resolution
    # -------------------------------------------------------------------------

    async def resolve_embedding(
        self,
        item_id: str,
        item: Optional[ContentItem] = None,
    ) -> Optional[List[float]]:
        """
        Embedding for item_id: cache, then the item itself, then the vector index,
        then the embedding provider (result upserted into the index). Resolved
        vectors are cached without expiry. None when nothing yields a vector.
        """
        key = embedding_key(item_id)
        cached = await self._cache.get(key)
        if isinstance(cached, list) and cached:
            return [float(x) for x in cached]

        vector = await self._lookup_embedding(item_id, item)
        if vector:
            await self._cache.set(key, vector, None)
        return vector

    async def _lookup_embedding(
        self,
        item_id: str,
        item: Optional[ContentItem],
    ) -> Optional[List[float]]:
        if item is not None and item.embedding_vector:
            return list(item.embedding_vector)

        matches = await self._index.search_by_metadata({"item_id": item_id}, 1)
        if matches and matches[0].vector:
            return list(matches[0].vector)

        if item is None or not item.text or self._embedder is None:
            logger.debug("[preferences] NO_EMBEDDING item_id=%s", item_id)
            return None
        vector = await self._embedder.embed(item.text)
        await self._index.upsert(item_id, vector, item.to_metadata())
        return vector

    async def _match_vector(self, match: VectorMatch) -> Optional[List[float]]:
        if match.vector:
            return list(match.vector)
        return await self.resolve_embedding(match.item_id)


def _same_dimension(pairs, dimension: Optional[int]):
    """Keep (vector, weight) pairs matching dimension (or the first vector's when None)."""
    if not pairs:
        return []
    if dimension is None:
        dimension = len(pairs[0][0])
    kept = [(v, w) for v, w in pairs if len(v) == dimension]
    if len(kept) < len(pairs):
        logger.warning(
            "[preferences] DIMENSION_MISMATCH dropped=%s expected=%s",
            len(pairs) - len(kept), dimension,
        )
    return kept
