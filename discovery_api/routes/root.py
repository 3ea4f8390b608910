"""Root and health endpoints."""

from fastapi import APIRouter

from ..services import QdrantVectorIndex, RedisCacheBackend
from ..state import get_state

router = APIRouter()


@router.get("/")
def root():
    state = get_state()
    return {
        "name": "Discovery Engine API",
        "version": "1.0.0",
        "backends": {
            "content_store": type(state.content_store).__name__,
            "vector_index": type(state.vector_index).__name__,
            "cache": type(state.cache_backend).__name__,
            "embeddings": type(state.embedding_provider).__name__ if state.embedding_provider else None,
        },
        "endpoints": {
            "discovery": [
                "/api/discovery/feed",
                "/api/discovery/similar/{item_id}",
                "/api/discovery/preferences/{user_id}",
                "/api/discovery/batch",
            ],
            "admin": [
                "/api/admin/invalidate/pattern",
                "/api/admin/invalidate/event",
                "/api/admin/rules",
                "/api/admin/performance",
                "/api/admin/sessions/{user_id}",
            ],
        },
    }


@router.get("/api/health")
async def health():
    state = get_state()
    qdrant = None
    if isinstance(state.vector_index, QdrantVectorIndex):
        qdrant = await state.vector_index.is_available()
    redis_ok = None
    if isinstance(state.cache_backend, RedisCacheBackend):
        redis_ok = await state.cache_backend.ping()
    return {
        "status": "healthy",
        "qdrant": {"configured": qdrant is not None, "available": qdrant},
        "redis": {"configured": redis_ok is not None, "available": redis_ok},
        "openai": {"configured": state.embedding_provider is not None},
    }
