"""API route modules."""

from localdirectory.api.routes.duplicates import router as duplicates_router
from localdirectory.api.routes.health import router as health_router
from localdirectory.api.routes.imports import router as imports_router
from localdirectory.api.routes.sync import router as sync_router

__all__ = [
    "health_router",
    "imports_router",
    "sync_router",
    "duplicates_router",
]
