"""
Pattern- and event-driven cache invalidation.

Rules are stored in the cache under RULES_KEY (24h TTL by default) and fall
back to the built-in set when absent or unreadable.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from ..errors import InvalidInput
from ..models.config import DiscoveryConfig, resolve_config
from ..models.invalidation import InvalidationEvent, InvalidationRule
from .keys import RULES_KEY
from .layer import CacheLayer
from .patterns import default_rules, expand_pattern, pattern_to_regex, validate_pattern

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvalidationService:
    """Deletes cache keys by glob pattern or by domain event."""

    def __init__(
        self,
        cache: CacheLayer,
        config: Optional[DiscoveryConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._cache = cache
        self._config = resolve_config(config)
        self._clock = clock

    validate_pattern = staticmethod(validate_pattern)

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """Delete every key matching pattern. Returns the number actually deleted."""
        regex = pattern_to_regex(pattern)
        keys = [key for key in await self._cache.list_keys() if regex.match(key)]
        batch_size = self._config.invalidation_batch_size
        deleted = 0
        for start in range(0, len(keys), batch_size):
            batch = keys[start:start + batch_size]
            results = await asyncio.gather(*(self._cache.delete(key) for key in batch))
            deleted += sum(1 for ok in results if ok)
        logger.info("[invalidation] pattern=%s matched=%s deleted=%s", pattern, len(keys), deleted)
        return deleted

    async def invalidate_by_event(self, event: InvalidationEvent) -> List[Tuple[str, int]]:
        """
        Apply every rule matching event, high priority first.

        Returns (expanded pattern, deleted count) per applied rule.
        """
        now = self._clock()
        rules = [rule for rule in await self.get_active_rules() if rule.matches(event, now)]
        rules.sort(key=lambda rule: rule.priority.rank, reverse=True)
        results = []
        for rule in rules:
            expanded = expand_pattern(rule.pattern, event)
            results.append((expanded, await self.invalidate_by_pattern(expanded)))
        logger.info(
            "[invalidation] EVENT action=%s user_id=%s rules=%s",
            event.action, event.user_id, len(results),
        )
        return results

    async def get_active_rules(self) -> List[InvalidationRule]:
        stored = await self._cache.get(RULES_KEY)
        if stored is None:
            return default_rules()
        try:
            return [InvalidationRule.model_validate(rule) for rule in stored]
        except (TypeError, ValidationError) as e:
            logger.warning("[invalidation] STORED_RULES_INVALID error=%s, using defaults", e)
            return default_rules()

    async def add_rule(self, rule: InvalidationRule) -> List[InvalidationRule]:
        """Add rule, replacing any existing rule with the same pattern."""
        if not validate_pattern(rule.pattern):
            raise InvalidInput(f"Invalid invalidation pattern: {rule.pattern!r}")
        rules = [r for r in await self.get_active_rules() if r.pattern != rule.pattern]
        rules.append(rule)
        await self._save_rules(rules)
        return rules

    async def remove_rule(self, pattern: str) -> List[InvalidationRule]:
        rules = [r for r in await self.get_active_rules() if r.pattern != pattern]
        await self._save_rules(rules)
        return rules

    async def _save_rules(self, rules: List[InvalidationRule]) -> None:
        payload = [rule.model_dump(mode="json") for rule in rules]
        await self._cache.set(RULES_KEY, payload, self._config.rules_cache_ttl)
