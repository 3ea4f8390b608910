"""
Discovery Engine API: FastAPI app factory.

Use: uvicorn discovery_api.app:app
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from discovery.errors import InvalidInput, ItemNotFound, NoValidSignal, UpstreamUnavailable

from .config import get_config
from .routes import register_routes
from .state import get_state

logger = logging.getLogger(__name__)

# Exception type -> HTTP status. Lookup walks the MRO, so ItemNotFound wins over InvalidInput.
ERROR_STATUS = {
    InvalidInput: 400,
    ItemNotFound: 404,
    NoValidSignal: 422,
    UpstreamUnavailable: 503,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("[api] %s %s -> %s: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app() -> FastAPI:
    """Build FastAPI app with CORS, error mapping, routes, and startup."""
    app = FastAPI(
        title="Discovery Engine API",
        description="Personalized discovery feed, similar content and cache administration",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for exc_type, status_code in ERROR_STATUS.items():
        app.add_exception_handler(exc_type, _error_handler(status_code))
    register_routes(app)

    @app.on_event("startup")
    async def index_seed_content():
        logging.basicConfig(level=get_config().log_level)
        state = get_state()
        try:
            indexed = await state.index_content()
        except UpstreamUnavailable as e:
            logger.warning("[startup] Indexing seed content failed: %s", e)
            return
        if indexed:
            logger.info("[startup] Indexed %s items with embeddings", indexed)

    return app


app = create_app()
