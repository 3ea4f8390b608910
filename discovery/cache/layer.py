"""
Best-effort JSON cache over a CacheBackend.

The cache is an optimization only: every backend failure is logged and turned
into a miss (get) or a no-op (set/delete). Nothing here raises to callers.
"""

import json
import logging
from typing import Any, List, Optional

from ..interfaces import CacheBackend

logger = logging.getLogger(__name__)


class CacheLayer:
    """JSON get/set/delete/list over an optional backend (None disables caching)."""

    def __init__(self, backend: Optional[CacheBackend] = None):
        self._backend = backend

    async def get(self, key: str) -> Optional[Any]:
        if self._backend is None:
            return None
        try:
            raw = await self._backend.get(key)
        except Exception as e:
            logger.warning("[cache] GET_FAILED key=%s error=%s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("[cache] CORRUPT_ENTRY key=%s error=%s, treating as miss", key, e)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store value as JSON. Returns False when the write did not happen."""
        if self._backend is None:
            return False
        try:
            await self._backend.set(key, json.dumps(value), ttl_seconds)
        except Exception as e:
            logger.warning("[cache] SET_FAILED key=%s error=%s", key, e)
            return False
        return True

    async def delete(self, key: str) -> bool:
        if self._backend is None:
            return False
        try:
            return bool(await self._backend.delete(key))
        except Exception as e:
            logger.warning("[cache] DELETE_FAILED key=%s error=%s", key, e)
            return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        if self._backend is None:
            return []
        try:
            return list(await self._backend.list_keys(prefix))
        except Exception as e:
            logger.warning("[cache] LIST_FAILED prefix=%s error=%s", prefix, e)
            return []
