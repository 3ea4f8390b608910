"""
Glob patterns for cache invalidation.

Syntax: `*` any run of characters, `?` one character, `{a,b}` alternation.
Everything else is literal. Patterns are anchored at both ends.

Also holds the built-in rule set plus pattern and event builders for the
common invalidation scenarios.
"""

import re
from typing import List, Optional, Pattern

from ..errors import InvalidInput
from ..models.invalidation import (
    EventType,
    InvalidationEvent,
    InvalidationRule,
    RuleConditions,
    RulePriority,
)

_PLACEHOLDERS = (
    ("{userId}", "user_id"),
    ("{contentId}", "content_id"),
    ("{contentType}", "content_type"),
)


def pattern_to_regex(pattern: str) -> Pattern:
    """Compile a glob pattern. Raises InvalidInput on an empty pattern or unbalanced braces."""
    if not pattern:
        raise InvalidInput("Invalidation pattern must not be empty")
    parts = ["^"]
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        elif ch == "{":
            end = pattern.find("}", i + 1)
            if end == -1:
                raise InvalidInput(f"Unclosed '{{' in pattern: {pattern}")
            body = pattern[i + 1:end]
            if "{" in body:
                raise InvalidInput(f"Nested '{{' in pattern: {pattern}")
            alternatives = [re.escape(alt) for alt in body.split(",")]
            parts.append("(" + "|".join(alternatives) + ")")
            i = end
        elif ch == "}":
            raise InvalidInput(f"Unmatched '}}' in pattern: {pattern}")
        else:
            parts.append(re.escape(ch))
        i += 1
    parts.append("$")
    return re.compile("".join(parts))


def validate_pattern(pattern: str) -> bool:
    try:
        pattern_to_regex(pattern)
    except InvalidInput:
        return False
    return True


def expand_pattern(pattern: str, event: InvalidationEvent) -> str:
    """Substitute {userId}/{contentId}/{contentType}; a missing value becomes `*`."""
    for placeholder, field in _PLACEHOLDERS:
        pattern = pattern.replace(placeholder, getattr(event, field) or "*")
    return pattern


DEFAULT_RULES: List[InvalidationRule] = [
    InvalidationRule(
        pattern="user_*:{userId}:*",
        description="Invalidate all user-specific cache when user data changes",
        priority=RulePriority.HIGH,
        conditions=RuleConditions(user_actions=["profile_update", "settings_change"]),
    ),
    InvalidationRule(
        pattern="user_preferences:{userId}",
        description="Drop the cached preference profile when preferences are reset",
        priority=RulePriority.HIGH,
        conditions=RuleConditions(user_actions=["preference_reset"]),
    ),
    InvalidationRule(
        pattern="post:{contentId}:*",
        description="Invalidate post-specific cache when post is updated",
        priority=RulePriority.HIGH,
        conditions=RuleConditions(user_actions=["post_update", "post_delete"], content_types=["post"]),
    ),
    InvalidationRule(
        pattern="feed:*:{userId}:*",
        description="Invalidate user feeds when following/unfollowing",
        priority=RulePriority.MEDIUM,
        conditions=RuleConditions(user_actions=["follow", "unfollow", "block", "unblock"]),
    ),
    InvalidationRule(
        pattern="discovery_feed:{userId}:*",
        description="Invalidate discovery feeds when user interactions or preferences change",
        priority=RulePriority.MEDIUM,
        conditions=RuleConditions(
            user_actions=["like", "unlike", "save", "unsave", "comment", "preference_update", "preference_reset"]
        ),
    ),
    InvalidationRule(
        pattern="rec_*:{userId}:*",
        description="Invalidate recommendation cache when user behavior changes",
        priority=RulePriority.MEDIUM,
        conditions=RuleConditions(user_actions=["like", "unlike", "save", "unsave", "comment"]),
    ),
    InvalidationRule(
        pattern="media:{contentId}:*",
        description="Invalidate media cache when media is updated",
        priority=RulePriority.LOW,
        conditions=RuleConditions(user_actions=["media_update", "media_delete"], content_types=["media"]),
    ),
]


def default_rules() -> List[InvalidationRule]:
    """Fresh copies of the built-in rules."""
    return [rule.model_copy(deep=True) for rule in DEFAULT_RULES]


class InvalidationPatterns:
    """Pattern builders for common key families."""

    @staticmethod
    def user_all(user_id: str) -> str:
        return f"*{user_id}*"

    @staticmethod
    def user_feed(user_id: str) -> str:
        return f"feed:{user_id}:*"

    @staticmethod
    def user_discovery(user_id: str) -> str:
        return f"discovery_feed:{user_id}:*"

    @staticmethod
    def user_recommendations(user_id: str) -> str:
        return f"rec_*:{user_id}:*"

    @staticmethod
    def user_preferences(user_id: str) -> str:
        return f"user_preferences:{user_id}"

    @staticmethod
    def post(post_id: str) -> str:
        return f"post:{post_id}*"

    @staticmethod
    def media(media_id: str) -> str:
        return f"media:{media_id}*"

    @staticmethod
    def item_embeddings() -> str:
        return "item_embedding:*"

    @staticmethod
    def all_feeds() -> str:
        return "*_feed:*"


class InvalidationTriggers:
    """Event builders for common invalidation triggers."""

    @staticmethod
    def profile_update(user_id: str) -> InvalidationEvent:
        return InvalidationEvent(
            type=EventType.USER_ACTION, user_id=user_id, action="profile_update", content_type="profile"
        )

    @staticmethod
    def post_update(user_id: str, post_id: str) -> InvalidationEvent:
        return InvalidationEvent(
            type=EventType.CONTENT_UPDATE,
            user_id=user_id,
            content_id=post_id,
            content_type="post",
            action="post_update",
        )

    @staticmethod
    def post_delete(user_id: str, post_id: str) -> InvalidationEvent:
        return InvalidationEvent(
            type=EventType.CONTENT_UPDATE,
            user_id=user_id,
            content_id=post_id,
            content_type="post",
            action="post_delete",
        )

    @staticmethod
    def user_interaction(user_id: str, action: str, target_id: Optional[str] = None) -> InvalidationEvent:
        return InvalidationEvent(
            type=EventType.USER_ACTION,
            user_id=user_id,
            action=action,
            content_id=target_id,
            metadata={"interaction_type": action},
        )

    @staticmethod
    def preference_update(user_id: str) -> InvalidationEvent:
        return InvalidationEvent(type=EventType.USER_ACTION, user_id=user_id, action="preference_update")

    @staticmethod
    def preference_reset(user_id: str) -> InvalidationEvent:
        return InvalidationEvent(type=EventType.USER_ACTION, user_id=user_id, action="preference_reset")
