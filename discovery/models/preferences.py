"""
Preference model: the per-user profile learned from interactions.

Owned by the PreferenceLearner; every other stage reads a snapshot.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel

DEFAULT_CONTENT_TYPE_AFFINITY = 0.5


class UserPreferenceProfile(BaseModel):
    """
    Preference vector plus content-type affinities for one user.

    vector: L2-normalized, same dimension as item embeddings.
    content_type_affinities: content type -> affinity in [0, 1].
    """

    user_id: str
    vector: List[float]
    content_type_affinities: Dict[str, float] = {}
    last_updated: datetime

    def affinity_for(self, content_type: str) -> float:
        return self.content_type_affinities.get(content_type, DEFAULT_CONTENT_TYPE_AFFINITY)


class UserContext(BaseModel):
    """Short-term context used for the diversity score (recent topic history)."""

    user_id: str
    recent_topics: List[str] = []


class InteractionType(str, Enum):
    """Interactions that qualify for preference learning."""

    SAVE = "save"
    CREATE = "create"
    LIKE = "like"
    SHARE = "share"
