"""
Embedding providers.

OpenAIEmbeddingProvider calls the OpenAI embeddings API. CachedEmbeddingProvider
wraps any provider with bounded retry and an indefinite per-content cache;
content embeddings never change once computed.
"""

import asyncio
import hashlib
import logging
import os
from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from discovery.errors import UpstreamUnavailable
from discovery.interfaces import EmbeddingProvider

logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider:
    """Text -> vector via the OpenAI embeddings endpoint."""

    DEFAULT_MODEL = "text-embedding-3-small"
    DEFAULT_DIMENSIONS = 1024

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model
        self.dimensions = dimensions
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if not self.api_key and self._client is None:
            raise UpstreamUnavailable(
                "embedding_provider",
                "OpenAI API key not provided. Set OPENAI_API_KEY or pass api_key.",
            )
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def embed(self, content: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=content,
                dimensions=self.dimensions,
            )
        except OpenAIError as e:
            raise UpstreamUnavailable("embedding_provider", str(e)) from e
        return list(response.data[0].embedding)


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class CachedEmbeddingProvider:
    """
    Retry + cache boundary around an embedding provider.

    Retries UpstreamUnavailable up to MAX_RETRIES attempts with a fixed delay,
    then re-raises. Successful results are cached by content hash forever.
    """

    MAX_RETRIES = 3
    RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
    ):
        self._provider = provider
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._cache: Dict[str, List[float]] = {}
        self.calls = 0

    def __len__(self) -> int:
        return len(self._cache)

    async def embed(self, content: str) -> List[float]:
        key = content_hash(content)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        for attempt in range(self.max_retries):
            self.calls += 1
            try:
                vector = await self._provider.embed(content)
                break
            except UpstreamUnavailable as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        "[embeddings] RETRY attempt=%s/%s error=%s",
                        attempt + 1, self.max_retries, e,
                    )
                    await asyncio.sleep(self.retry_delay)
                else:
                    raise

        self._cache[key] = list(vector)
        return list(vector)
