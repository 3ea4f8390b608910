"""
Content model: a post eligible for recommendation.

Used by the candidate pool, scoring, ranking and similar-content stages.
Built from store/index dicts via ContentItem.model_validate(d) or ensure_items().
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    MIXED = "mixed"


class EngagementCounters(BaseModel):
    """Monotonic interaction counters maintained outside the engine."""

    save_count: int = Field(default=0, ge=0)
    comment_count: int = Field(default=0, ge=0)
    view_count: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        """Saves plus comments; views are not an engagement signal."""
        return self.save_count + self.comment_count


class ContentItem(BaseModel):
    """
    A published post as seen by the discovery engine.

    The engine only reads items. embedding_vector may be absent when the store
    does not carry embeddings; it is then resolved through the vector index.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    author_id: str
    created_at: datetime
    embedding_vector: Optional[List[float]] = None
    content_type: ContentType = ContentType.TEXT
    hashtags: List[str] = []
    engagement: EngagementCounters = EngagementCounters()
    is_private: bool = False
    text: Optional[str] = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("hashtags")
    @classmethod
    def _unique_hashtags(cls, value: List[str]) -> List[str]:
        # Unordered set semantics, stable order for serialization
        seen = []
        for tag in value:
            tag = tag.strip().lower().lstrip("#")
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    def age_hours(self, now: datetime) -> float:
        """Hours elapsed since creation (negative for future timestamps)."""
        return (now - self.created_at).total_seconds() / 3600.0

    def to_metadata(self) -> Dict[str, Any]:
        """Payload stored alongside the vector in the vector index."""
        return {
            "item_id": self.id,
            "author_id": self.author_id,
            "created_at": self.created_at.isoformat(),
            "content_type": self.content_type.value,
            "hashtags": list(self.hashtags),
            "save_count": self.engagement.save_count,
            "comment_count": self.engagement.comment_count,
            "view_count": self.engagement.view_count,
            "is_private": self.is_private,
        }


class ContentQueryFilters(BaseModel):
    """Filters passed to ContentStore.query_visible_items (newest first)."""

    exclude_own: bool = True
    exclude_blocked: bool = True
    exclude_seen: bool = True
    min_created_at: Optional[datetime] = None
    content_types: Optional[List[ContentType]] = None
    limit: int = Field(default=60, gt=0)


def ensure_items(items: List[Union[Dict[str, Any], "ContentItem"]]) -> List["ContentItem"]:
    """Convert list of dicts or ContentItems to ContentItem models."""
    return [
        ContentItem.model_validate(i) if isinstance(i, dict) else i
        for i in items
    ]
