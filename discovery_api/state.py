"""Application state: collaborators and the discovery engine built from ServerConfig."""

import logging
from typing import Any, Optional

from discovery import RecommendationOrchestrator
from discovery.models import DiscoveryConfig

from .config import ServerConfig, get_config
from .services import (
    CachedEmbeddingProvider,
    InMemoryCacheBackend,
    InMemoryContentStore,
    InMemoryVectorIndex,
    OpenAIEmbeddingProvider,
    QdrantVectorIndex,
    RedisCacheBackend,
)

logger = logging.getLogger(__name__)


class AppState:
    """Global application state."""

    def __init__(
        self,
        config: ServerConfig,
        content_store: Optional[Any] = None,
        vector_index: Optional[Any] = None,
        cache_backend: Optional[Any] = None,
        embedding_provider: Optional[Any] = None,
        discovery_config: Optional[DiscoveryConfig] = None,
    ):
        self.config = config
        self.discovery_config = discovery_config or config.load_discovery_config()

        self.content_store = content_store if content_store is not None else self._create_content_store(config)
        self.vector_index = vector_index if vector_index is not None else self._create_vector_index(config)
        self.cache_backend = cache_backend if cache_backend is not None else self._create_cache_backend(config)
        self.embedding_provider = (
            embedding_provider if embedding_provider is not None else self._create_embedding_provider(config)
        )
        logger.info(
            "[startup] content_store=%s vector_index=%s cache=%s embeddings=%s",
            type(self.content_store).__name__,
            type(self.vector_index).__name__,
            type(self.cache_backend).__name__,
            type(self.embedding_provider).__name__ if self.embedding_provider else None,
        )

        self.engine = RecommendationOrchestrator(
            content_store=self.content_store,
            vector_index=self.vector_index,
            cache_backend=self.cache_backend,
            embedding_provider=self.embedding_provider,
            config=self.discovery_config,
        )

    def _create_content_store(self, config: ServerConfig) -> InMemoryContentStore:
        if config.content_json_path:
            store = InMemoryContentStore.from_json(config.content_json_path)
            logger.info("[startup] Loaded %s items from %s", len(store.items), config.content_json_path)
            return store
        return InMemoryContentStore()

    def _create_vector_index(self, config: ServerConfig) -> Any:
        if config.qdrant_url:
            return QdrantVectorIndex(
                config.qdrant_url,
                collection_name=config.qdrant_collection,
                dimensions=self.discovery_config.embedding_dimensions,
            )
        return InMemoryVectorIndex()

    def _create_cache_backend(self, config: ServerConfig) -> Any:
        if config.redis_url:
            return RedisCacheBackend(config.redis_url)
        return InMemoryCacheBackend()

    def _create_embedding_provider(self, config: ServerConfig) -> Optional[CachedEmbeddingProvider]:
        if not config.openai_api_key:
            return None
        return CachedEmbeddingProvider(
            OpenAIEmbeddingProvider(
                api_key=config.openai_api_key,
                model=config.embedding_model,
                dimensions=self.discovery_config.embedding_dimensions,
            )
        )

    async def index_content(self) -> int:
        """
        Upsert every stored item that carries an embedding into the vector index.
        Only applies to the in-memory content store. Returns the number indexed.
        """
        store = self.content_store
        if not isinstance(store, InMemoryContentStore):
            return 0
        indexed = 0
        for item in store.items.values():
            if not item.embedding_vector:
                continue
            metadata = item.to_metadata()
            metadata["saved_by"] = store.saved_by(item.id)
            await self.vector_index.upsert(item.id, item.embedding_vector, metadata)
            indexed += 1
        return indexed


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        _state = AppState(get_config())
    return _state


def set_state(state: Optional[AppState]) -> None:
    """Replace the global state (tests inject in-memory collaborators)."""
    global _state
    _state = state
