"""Register all route modules on the FastAPI app."""

from fastapi import FastAPI

from .admin import router as admin_router
from .discovery import router as discovery_router
from .root import router as root_router


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the app."""
    app.include_router(root_router)
    app.include_router(discovery_router, prefix="/api/discovery", tags=["discovery"])
    app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
