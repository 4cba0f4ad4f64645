"""
FastAPI application entry point for the Pixelyze API.

This module provides the main FastAPI application with:
- Page controllers and image/account action endpoints
- Health and readiness endpoints
- Request/response logging with correlation IDs
- Prometheus metrics
- CORS
- MongoDB connection management
- Graceful startup and shutdown
"""

import time
import uuid
import httpx
import structlog
import uvicorn
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CollectorRegistry, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import get_settings, Settings
from api.src.database import MongoConnectionPool
from api.src.errors import PixelyzeError
from api.src.navigation import NavigationContextMiddleware, PathRevalidator
from api.src.repositories.account_repo import AccountRepository
from api.src.repositories.image_repo import ImageRepository
from api.src.routers import images, pages
from api.src.services.asset_gateway import CloudinaryGateway
from api.src.services.identity import ClerkIdentityProvider
from shared.logging import bind_context, clear_context, configure_logging
from shared.metrics import get_metrics_handler, setup_metrics

logger = structlog.get_logger(__name__)

# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Opening the MongoDB connection when a URL is configured
    - Closing the connection and HTTP clients on shutdown
    """
    settings: Settings = app.state.settings
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    try:
        if settings.mongodb_url:
            logger.info("initializing_database_connection", db_name=settings.mongodb_db_name)
            await app.state.db_pool.open()
            await app.state.account_repo.ensure_indexes()
        else:
            logger.warning("database_url_not_configured")

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    finally:
        logger.info("application_shutting_down")

        try:
            await app.state.db_pool.close()
            await app.state.asset_gateway.aclose()
            await app.state.identity_provider.aclose()
            await app.state.download_client.aclose()
            logger.info("application_shutdown_complete")

        except Exception as e:
            logger.error("application_shutdown_failed", error=str(e), exc_info=True)


# ============================================================================
# Middleware
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and metrics."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        method = request.method
        path = request.url.path
        http_metrics = request.app.state.http_metrics

        clear_context()
        bind_context(correlation_id=correlation_id)

        start_time = time.perf_counter()
        logger.info(
            "request_started",
            method=method,
            path=path,
            client_ip=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
                exc_info=True
            )
            raise

        duration = time.perf_counter() - start_time
        http_metrics.requests_total.labels(method=method, endpoint=path, status=response.status_code).inc()
        http_metrics.request_duration.labels(method=method, endpoint=path).observe(duration)

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration=f"{duration:.3f}s",
        )

        response.headers["X-Correlation-ID"] = correlation_id
        return response


# ============================================================================
# Exception Handlers
# ============================================================================


async def pixelyze_exception_handler(request: Request, exc: PixelyzeError):
    """Answer domain errors with their status code and kind."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_error",
        path=request.url.path,
        error_code=exc.kind,
        status_code=exc.status_code,
        detail=str(exc)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error_code": exc.kind}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Optional[Settings] = None,
    *,
    db_pool: Optional[MongoConnectionPool] = None,
    asset_gateway: Optional[CloudinaryGateway] = None,
    identity_provider: Optional[ClerkIdentityProvider] = None,
    download_client: Optional[httpx.AsyncClient] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """
    Build the application and its shared resources.

    Resources not passed in are created from settings. Each application
    gets its own metrics registry unless one is given.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Data access for the Pixelyze image transformation app. "
            "Provides page data, image management and account credits."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # ------------------------------------------------------------------------
    # Shared resources
    # ------------------------------------------------------------------------

    registry = registry or CollectorRegistry()
    http_metrics, data_metrics = setup_metrics(registry)

    db_pool = db_pool or MongoConnectionPool(
        settings.mongodb_url,
        settings.mongodb_db_name,
        server_selection_timeout_ms=settings.mongodb_server_selection_timeout_ms,
        max_pool_size=settings.mongodb_max_pool_size,
    )
    asset_gateway = asset_gateway or CloudinaryGateway(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        folder=settings.cloudinary_folder,
        base_url=settings.cloudinary_api_base_url,
        timeout=settings.cloudinary_timeout,
    )
    identity_provider = identity_provider or ClerkIdentityProvider(
        jwks_url=settings.clerk_jwks_url,
        issuer=settings.clerk_issuer,
        audience=settings.clerk_audience,
        algorithm=settings.clerk_jwt_algorithm,
        session_cookie=settings.clerk_session_cookie,
        jwks_ttl=timedelta(seconds=settings.clerk_jwks_ttl_seconds),
    )
    download_client = download_client or httpx.AsyncClient(timeout=settings.download_timeout)
    revalidator = PathRevalidator()

    app.state.settings = settings
    app.state.metrics_registry = registry
    app.state.http_metrics = http_metrics
    app.state.db_pool = db_pool
    app.state.asset_gateway = asset_gateway
    app.state.identity_provider = identity_provider
    app.state.download_client = download_client
    app.state.revalidator = revalidator
    app.state.account_repo = AccountRepository(db_pool, metrics=data_metrics, revalidator=revalidator)
    app.state.image_repo = ImageRepository(db_pool, asset_gateway, revalidator, metrics=data_metrics)

    # ------------------------------------------------------------------------
    # Middleware (last added runs first)
    # ------------------------------------------------------------------------

    app.add_middleware(NavigationContextMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ------------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------------

    app.add_exception_handler(PixelyzeError, pixelyze_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # ------------------------------------------------------------------------
    # Health, readiness and metrics
    # ------------------------------------------------------------------------

    @app.get("/health", tags=["Health"], response_class=JSONResponse)
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    @app.get("/ready", tags=["Health"], response_class=JSONResponse)
    async def readiness_check() -> JSONResponse:
        """
        Readiness check endpoint.

        Verifies the database answers a ping.
        """
        checks = {"database": "unknown"}

        try:
            db = await app.state.db_pool.get_connection()
            await db.command("ping")
            checks["database"] = "healthy"
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            checks["database"] = "unhealthy"

        all_healthy = all(value == "healthy" for value in checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "service": settings.app_name,
                "version": settings.app_version,
                "checks": checks
            }
        )

    if settings.metrics_enabled:
        metrics_handler = get_metrics_handler(registry)

        @app.get(settings.metrics_endpoint, tags=["Monitoring"], response_class=PlainTextResponse)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(content=metrics_handler(), media_type=CONTENT_TYPE_LATEST)

    # ------------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------------

    app.include_router(pages.router)
    app.include_router(images.images_router, prefix=settings.api_prefix)
    app.include_router(images.accounts_router, prefix=settings.api_prefix)

    return app


_settings = get_settings()
configure_logging(
    log_level=_settings.log_level,
    json_logs=_settings.log_format == "json",
    service_name=_settings.app_name,
    environment=_settings.environment,
)

app = create_app(_settings)

# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    logger.info(
        "starting_uvicorn_server",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug
    )

    uvicorn.run(
        "api.src.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.log_level.lower(),
        access_log=True,
    )
