"""
Candidate retrieval: the pool of posts a user may be shown.

Pulls newest visible items from the content store, merges vector index nearest
neighbours of the user's profile when one exists, and re-applies the
visibility filters in-process (own posts, blocked users in both directions,
seen items, private posts from unfollowed authors).

The public entry point is CandidateRetriever.get_candidates.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from ..interfaces import ContentStore, VectorIndex
from ..models.config import DiscoveryConfig, resolve_config
from ..models.content import ContentItem, ContentQueryFilters
from ..models.preferences import UserPreferenceProfile

logger = logging.getLogger(__name__)


def is_visible_to(
    item: ContentItem,
    viewer_id: str,
    blocked_ids: Set[str],
    following_ids: Set[str],
) -> bool:
    """True if viewer_id may see item at all (ignores own/seen exclusions)."""
    if item.author_id in blocked_ids:
        return False
    if item.is_private and item.author_id != viewer_id and item.author_id not in following_ids:
        return False
    return True


def _filter_candidates(
    items: List[ContentItem],
    viewer_id: str,
    blocked_ids: Set[str],
    following_ids: Set[str],
    seen_ids: Set[str],
) -> List[ContentItem]:
    """Drop own, blocked, seen and hidden private items; de-duplicate by id."""
    kept: Dict[str, ContentItem] = {}
    for item in items:
        if item.id in kept:
            continue
        if item.author_id == viewer_id:
            continue
        if item.id in seen_ids:
            continue
        if not is_visible_to(item, viewer_id, blocked_ids, following_ids):
            continue
        kept[item.id] = item
    return list(kept.values())


def _newest_first(items: List[ContentItem]) -> List[ContentItem]:
    return sorted(items, key=lambda item: item.created_at, reverse=True)


class CandidateRetriever:
    """Assembles the candidate pool from the content store and vector index."""

    def __init__(
        self,
        content_store: ContentStore,
        vector_index: Optional[VectorIndex] = None,
        config: Optional[DiscoveryConfig] = None,
    ):
        self._store = content_store
        self._index = vector_index
        self._config = resolve_config(config)

    async def get_candidates(
        self,
        user_id: str,
        limit: int,
        profile: Optional[UserPreferenceProfile] = None,
    ) -> List[ContentItem]:
        """
        Up to limit * candidate_multiplier items, newest first.

        Any store or index failure is logged and yields an empty pool; the
        orchestrator then takes the fallback path.
        """
        pool_size = limit * self._config.candidate_multiplier
        try:
            blocked_ids, following_ids, seen_ids = await asyncio.gather(
                self._store.get_blocked_user_ids(user_id),
                self._store.get_following_ids(user_id),
                self._store.get_seen_item_ids(user_id),
            )
            filters = ContentQueryFilters(limit=pool_size)
            items = await self._store.query_visible_items(user_id, filters)

            semantic: List[ContentItem] = []
            if profile is not None and self._index is not None and self._config.semantic_candidates_enabled:
                semantic = await self._semantic_candidates(user_id, profile, limit, seen_ids)
                semantic = _filter_candidates(semantic, user_id, blocked_ids, following_ids, seen_ids)

            recent = _filter_candidates(items, user_id, blocked_ids, following_ids, seen_ids)
        except Exception as e:
            logger.warning(
                "[candidates] RETRIEVAL_FAILED user_id=%s error=%s, returning empty pool",
                user_id, e,
            )
            return []

        # Semantic matches keep their slots; recent items fill the rest of the pool.
        semantic = semantic[:pool_size]
        semantic_ids = {item.id for item in semantic}
        recent = [item for item in _newest_first(recent) if item.id not in semantic_ids]
        candidates = _newest_first(semantic + recent[:pool_size - len(semantic)])
        logger.debug(
            "[candidates] user_id=%s pool=%s (requested %s)",
            user_id, len(candidates), pool_size,
        )
        return candidates

    async def _semantic_candidates(
        self,
        user_id: str,
        profile: UserPreferenceProfile,
        k: int,
        seen_ids: Set[str],
    ) -> List[ContentItem]:
        """Nearest neighbours of the profile vector, hydrated from the content store."""
        matches = await self._index.nearest_neighbors(
            profile.vector,
            k,
            {"exclude_author_id": user_id, "exclude_item_ids": sorted(seen_ids)},
        )
        if not matches:
            return []
        hydrated = await asyncio.gather(*(self._store.get_item(m.item_id) for m in matches))
        return [item for item in hydrated if item is not None]

    async def get_recent_visible(self, user_id: str, limit: int) -> List[ContentItem]:
        """
        Newest visible items not authored by or blocked for user_id.

        Used by the fallback path; unlike get_candidates, errors propagate.
        Seen items are not excluded so a fully-read feed still returns something.
        """
        blocked_ids, following_ids = await asyncio.gather(
            self._store.get_blocked_user_ids(user_id),
            self._store.get_following_ids(user_id),
        )
        filters = ContentQueryFilters(exclude_seen=False, limit=limit)
        items = await self._store.query_visible_items(user_id, filters)
        visible = _filter_candidates(items, user_id, blocked_ids, following_ids, set())
        return _newest_first(visible)[:limit]
