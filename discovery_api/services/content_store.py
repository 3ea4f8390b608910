"""
In-memory content store.

Holds posts plus the social graph (follows, blocks), seen items and saved
posts. Used for local runs (optionally seeded from a JSON file) and tests.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

from discovery.models import ContentItem, ContentQueryFilters, ensure_items


class InMemoryContentStore:
    """ContentStore backed by dicts. Query semantics match the ContentStore Protocol."""

    def __init__(self, items: Optional[List[ContentItem]] = None):
        self.items: Dict[str, ContentItem] = {}
        self.following: Dict[str, Set[str]] = {}
        self.blocked: Dict[str, Set[str]] = {}
        self.seen: Dict[str, Set[str]] = {}
        self.saved: Dict[str, List[str]] = {}
        self.recent_hashtags: Dict[str, List[str]] = {}
        for item in items or []:
            self.add_item(item)

    # -------------------------------------------------------------------------
    # Mutation helpers
    # -------------------------------------------------------------------------

    def add_item(self, item: Union[ContentItem, Dict]) -> ContentItem:
        if isinstance(item, dict):
            item = ContentItem.model_validate(item)
        self.items[item.id] = item
        return item

    def follow(self, user_id: str, author_id: str) -> None:
        self.following.setdefault(user_id, set()).add(author_id)

    def block(self, user_id: str, other_id: str) -> None:
        self.blocked.setdefault(user_id, set()).add(other_id)

    def mark_seen(self, user_id: str, item_id: str) -> None:
        self.seen.setdefault(user_id, set()).add(item_id)

    def save(self, user_id: str, item_id: str) -> None:
        """Record a save; the item's hashtags become the user's most recent topics."""
        self.saved.setdefault(user_id, []).append(item_id)
        item = self.items.get(item_id)
        if item is not None:
            topics = self.recent_hashtags.setdefault(user_id, [])
            topics[:0] = [tag for tag in item.hashtags if tag not in topics]

    def saved_by(self, item_id: str) -> List[str]:
        return [user_id for user_id, ids in self.saved.items() if item_id in ids]

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryContentStore":
        """
        Load from a JSON file:
        {"items": [...], "follows": {user: [authors]}, "blocks": {user: [users]},
         "seen": {user: [items]}, "saves": {user: [items]}}
        """
        with open(path) as f:
            data = json.load(f)
        store = cls(ensure_items(data.get("items", [])))
        for user_id, authors in data.get("follows", {}).items():
            for author_id in authors:
                store.follow(user_id, author_id)
        for user_id, others in data.get("blocks", {}).items():
            for other_id in others:
                store.block(user_id, other_id)
        for user_id, item_ids in data.get("seen", {}).items():
            for item_id in item_ids:
                store.mark_seen(user_id, item_id)
        for user_id, item_ids in data.get("saves", {}).items():
            for item_id in item_ids:
                store.save(user_id, item_id)
        return store

    # -------------------------------------------------------------------------
    # ContentStore
    # -------------------------------------------------------------------------

    async def query_visible_items(
        self,
        viewer_id: str,
        filters: ContentQueryFilters,
    ) -> List[ContentItem]:
        blocked = await self.get_blocked_user_ids(viewer_id) if filters.exclude_blocked else set()
        following = self.following.get(viewer_id, set())
        seen = self.seen.get(viewer_id, set()) if filters.exclude_seen else set()
        content_types = set(filters.content_types) if filters.content_types else None

        visible = []
        for item in self.items.values():
            if filters.exclude_own and item.author_id == viewer_id:
                continue
            if item.author_id in blocked or item.id in seen:
                continue
            if item.is_private and item.author_id != viewer_id and item.author_id not in following:
                continue
            if filters.min_created_at is not None and item.created_at < filters.min_created_at:
                continue
            if content_types is not None and item.content_type not in content_types:
                continue
            visible.append(item)
        visible.sort(key=lambda i: i.created_at, reverse=True)
        return visible[:filters.limit]

    async def get_item(self, item_id: str) -> Optional[ContentItem]:
        return self.items.get(item_id)

    async def get_blocked_user_ids(self, user_id: str) -> Set[str]:
        blocked = set(self.blocked.get(user_id, set()))
        blocked.update(other for other, ids in self.blocked.items() if user_id in ids)
        return blocked

    async def get_following_ids(self, user_id: str) -> Set[str]:
        return set(self.following.get(user_id, set()))

    async def get_seen_item_ids(self, user_id: str) -> Set[str]:
        return set(self.seen.get(user_id, set()))

    async def get_recent_hashtags(self, user_id: str, limit: int) -> List[str]:
        return list(self.recent_hashtags.get(user_id, []))[:limit]
