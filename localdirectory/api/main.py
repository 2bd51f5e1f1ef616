"""LocalDirectory API - Main FastAPI Application.

It includes:
- CORS and API key middleware
- API versioning (/api/v1)
- Health check endpoints and Prometheus metrics at /metrics
- Review/business import, counter repair, sync queue and duplicate endpoints
- Scheduler start-up for the background review sync jobs

Usage:
    uvicorn localdirectory.api.main:app --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from localdirectory import __version__
from localdirectory.api.dependencies import reset_dependencies, set_scheduler
from localdirectory.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from localdirectory.api.routes.duplicates import router as duplicates_router
from localdirectory.api.routes.health import router as health_router, set_server_start_time
from localdirectory.api.routes.imports import router as imports_router
from localdirectory.api.routes.sync import router as sync_router
from localdirectory.config.settings import get_settings
from localdirectory.core.exceptions import (
    BatchLimitError,
    ConfigurationError,
    DirectoryError,
    DocumentNotFoundError,
    DocumentStoreError,
    MissingPlaceIdError,
)
from localdirectory.monitoring.metrics import get_metrics_app
from localdirectory.scheduler.jobs import SyncScheduler
from localdirectory.store import get_document_store
from localdirectory.sync.processor import ReviewSyncProcessor

logger = structlog.get_logger(__name__)

API_TITLE = "LocalDirectory API"
API_DESCRIPTION = """
## Local business directory: review import and sync service

### Features

- **Review import**: match reviews to businesses (place id, business id, name + phone,
  fuzzy name, address) and skip duplicates by review id or author + text
- **Business import**: bulk listing import with place id / slug de-duplication
- **Review sync**: queued, rate-limited review fetches from the GEOscraper API
- **Counter repair**: recompute review counts and ratings that drifted
- **Duplicate review cleanup**: pairwise scoring and source-authority resolution

### Authentication

Set `API_KEY_ENABLED=true` and `API_KEY=your-secret-key` to require the
X-API-Key header on all requests.
"""


# =============================================================================
# API Key Authentication Middleware
# =============================================================================


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Validate the API key for all requests except health, metrics and docs.
    """

    PUBLIC_PATHS = {
        "/",
        "/health",
        "/health/live",
        "/health/ready",
        "/metrics",
        "/metrics/",
        "/docs",
        "/redoc",
        "/openapi.json",
    }

    async def dispatch(self, request: Request, call_next):
        settings = get_settings()

        if not settings.api_key_enabled:
            return await call_next(request)

        if request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")
        expected_key = settings.api_key.get_secret_value() if settings.api_key else None

        if not expected_key:
            logger.error("api_key_enabled_but_not_set")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Server misconfiguration: API key authentication enabled but no key configured"},
            )

        if not api_key:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Missing X-API-Key header"},
            )

        if api_key != expected_key:
            logger.warning("invalid_api_key_attempt", path=request.url.path)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Invalid API key"},
            )

        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    - Startup: start the review sync scheduler when enabled
    - Shutdown: stop the scheduler
    """
    logger.info("application_starting")
    set_server_start_time()
    settings = get_settings()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = SyncScheduler(ReviewSyncProcessor(get_document_store(), settings=settings), settings)
        try:
            await scheduler.start()
        except Exception as e:
            # Manual sync endpoints keep working without the scheduler
            logger.error("scheduler_initialization_failed", error=str(e))
        set_scheduler(scheduler)
    else:
        logger.info("scheduler_disabled")

    logger.info("application_started")

    yield

    logger.info("application_stopping")
    if scheduler is not None and scheduler.is_running:
        try:
            await scheduler.stop()
        except Exception as e:
            logger.error("scheduler_shutdown_error", error=str(e))

    reset_dependencies()
    logger.info("application_stopped")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=[
        {"name": "Health", "description": "System health and status endpoints"},
        {"name": "Imports", "description": "Review and business imports, previews and diagnostics"},
        {"name": "Sync", "description": "Counter repair and the review sync queue"},
        {"name": "Duplicates", "description": "Duplicate review detection and resolution"},
    ],
)

_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=_settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key", "Accept"],
)
app.add_middleware(APIKeyMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


def _error_response(
    request: Request, status_code: int, error: str, exc: DirectoryError
) -> JSONResponse:
    response = ErrorResponse(
        error=error,
        message=exc.message,
        detail=str(exc.details) if exc.details else None,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with detailed response."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        value = error.get("input")
        errors.append(ValidationErrorDetail(
            field=field,
            message=error["msg"],
            value=value if isinstance(value, (str, int, float, bool, type(None))) else None,
        ))

    response = ValidationErrorResponse(
        errors=errors,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(DocumentNotFoundError)
async def not_found_handler(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
    return _error_response(request, status.HTTP_404_NOT_FOUND, "not_found", exc)


@app.exception_handler(BatchLimitError)
async def batch_limit_handler(request: Request, exc: BatchLimitError) -> JSONResponse:
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "batch_limit_exceeded", exc)


@app.exception_handler(MissingPlaceIdError)
async def missing_place_id_handler(request: Request, exc: MissingPlaceIdError) -> JSONResponse:
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "missing_place_id", exc)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("configuration_error", path=request.url.path, error=str(exc))
    return _error_response(request, status.HTTP_503_SERVICE_UNAVAILABLE, "not_configured", exc)


@app.exception_handler(DocumentStoreError)
async def store_error_handler(request: Request, exc: DocumentStoreError) -> JSONResponse:
    logger.error("document_store_request_failed", path=request.url.path, error=str(exc))
    return _error_response(request, status.HTTP_502_BAD_GATEWAY, "document_store_error", exc)


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    response = ErrorResponse(
        error="internal_server_error",
        message="An unexpected error occurred",
        detail=str(exc) if get_settings().debug else None,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# =============================================================================
# Root Endpoints
# =============================================================================


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {
        "name": API_TITLE,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "api": "/api/v1",
    }


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(imports_router)
api_v1_router.include_router(sync_router)
api_v1_router.include_router(duplicates_router)
app.include_router(api_v1_router)

app.mount("/metrics", get_metrics_app())


@app.get("/api/v1", include_in_schema=False)
async def api_v1_root() -> dict:
    return {
        "version": "v1",
        "endpoints": {
            "imports": "/api/v1/imports",
            "sync": "/api/v1/sync",
            "duplicates": "/api/v1/duplicates",
        },
        "documentation": "/docs",
    }
