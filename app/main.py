"""
Main FastAPI application for Trackline.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import (
    TracklineAppException, OrganizationNotFoundError, UserNotFoundError,
    TimeEntryNotFoundError, ScreenshotNotFoundError, ScreenshotDeletionNotAllowedError,
    GracePeriodExpiredError, UnauthorizedError, IntegrationNotFoundError,
    ResourceNotLinkedError, SyncedResourceNotFoundError, ProviderNotFoundError,
    AuthenticationError, RateLimitError, StorageError,
)
from app.core.http_client import close_http_client
from app.core.logging_config import setup_logging, log_info, log_warning, log_error
from app.integrations.registry import build_provider_registry
from app.middleware.request_logging import request_id_ctx, RequestLoggingMiddleware

# -----------------------------------------------------------------------------
# Startup / Shutdown
# -----------------------------------------------------------------------------
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    log_info("Starting up Trackline Service...")
    try:
        init_db()
        log_info("Database initialization completed!")

        # Adapters share the process-wide HTTP client
        app.state.provider_registry = build_provider_registry(settings)
        enabled = [meta.id for meta in app.state.provider_registry.get_enabled_providers()]
        log_info(f"Provider registry ready; enabled providers: {enabled or 'none'}")
    except Exception as exc:
        log_error(exc)
        raise
    yield
    log_info("Shutting down Trackline Service...")
    try:
        await close_http_client()
        log_info("HTTP client closed")
    except Exception as exc:
        log_warning(f"Failed to close HTTP client: {exc}")


# -----------------------------------------------------------------------------
# App Initialization
# -----------------------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-tenant time tracking with screenshots and project management integrations",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# -----------------------------------------------------------------------------
# Middleware Configuration
# -----------------------------------------------------------------------------
cors_enabled = bool(settings.enable_cors)
cors_origins = settings.cors_origins or []
if cors_enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
        max_age=3600,
    )
    log_info(f"CORS enabled for origins: {cors_origins}")
else:
    log_info("CORS disabled")

app.add_middleware(GZipMiddleware, minimum_size=1024)

# OAuth state lives in the signed session cookie
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    same_site="lax",
    https_only=settings.environment == "production",
)

app.add_middleware(RequestLoggingMiddleware)

# -----------------------------------------------------------------------------
# Exception Handlers
# -----------------------------------------------------------------------------
NOT_FOUND_ERRORS = (
    OrganizationNotFoundError, UserNotFoundError, TimeEntryNotFoundError,
    ScreenshotNotFoundError, IntegrationNotFoundError, SyncedResourceNotFoundError,
    ProviderNotFoundError,
)
FORBIDDEN_ERRORS = (ScreenshotDeletionNotAllowedError, GracePeriodExpiredError, UnauthorizedError)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = request_id_ctx.get()
    log_warning(f"Validation error on {request.url.path}: {exc.errors()}", request_id=request_id)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "validation_error", "detail": exc.errors(), "request_id": request_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = request_id_ctx.get()
    if exc.status_code >= 500:
        log_error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}", request_id=request_id)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": request_id},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(TracklineAppException)
async def trackline_exception_handler(request: Request, exc: TracklineAppException):
    request_id = request_id_ctx.get()
    log_error(exc, request_id=request_id)

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers = None
    if isinstance(exc, NOT_FOUND_ERRORS):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, FORBIDDEN_ERRORS):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ResourceNotLinkedError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, RateLimitError):
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
        if exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, AuthenticationError):
        status_code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, StorageError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    message = (
        "An unexpected internal error occurred."
        if settings.environment == "production" and status_code == 500
        else str(exc)
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "message": message, "request_id": request_id},
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    request_id = request_id_ctx.get()
    log_error(exc, request_id=request_id)
    msg = (
        "An unexpected error occurred. Please try again later."
        if settings.environment == "production"
        else str(exc)
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "message": msg, "request_id": request_id},
    )

# -----------------------------------------------------------------------------
# API Routers
# -----------------------------------------------------------------------------
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/", include_in_schema=False)
async def root():
    return {"service": settings.app_name, "version": settings.app_version, "docs": "/docs"}


# -----------------------------------------------------------------------------
# Entry Point
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
