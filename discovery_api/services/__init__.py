"""Collaborator implementations: content store, vector index, cache and embeddings."""

from .cache import InMemoryCacheBackend, RedisCacheBackend
from .content_store import InMemoryContentStore
from .embedding_provider import CachedEmbeddingProvider, OpenAIEmbeddingProvider, content_hash
from .vector_index import InMemoryVectorIndex, QdrantVectorIndex, point_id

__all__ = [
    "CachedEmbeddingProvider",
    "InMemoryCacheBackend",
    "InMemoryContentStore",
    "InMemoryVectorIndex",
    "OpenAIEmbeddingProvider",
    "QdrantVectorIndex",
    "RedisCacheBackend",
    "content_hash",
    "point_id",
]
