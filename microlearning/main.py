"""Microlearning API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from microlearning.certification import AlwaysFoodSafeClient, CertificationSubmitter
from microlearning.config import Settings, get_settings
from microlearning.core.context import get_request_id
from microlearning.core.database import init_async_cassandra, shutdown_async_cassandra
from microlearning.core.logging import configure_structlog, get_logger
from microlearning.core.middleware import RequestContextMiddleware
from microlearning.health import router as health_router
from microlearning.progress.collaborators import (
    CassandraApplicationStatusProvider,
    CassandraUserProfileProvider,
    InMemoryApplicationStatusProvider,
    InMemoryUserProfileProvider,
)
from microlearning.progress.router import router as microlearning_router
from microlearning.progress.service import MicrolearningService
from microlearning.progress.store import (
    TRANSIENT_DRIVER_ERRORS,
    CassandraProgressStore,
    InMemoryProgressStore,
)


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_cassandra_service(session: Any, settings: Settings) -> MicrolearningService:
    """Wire the service against a Cassandra session."""
    keyspace = settings.cassandra_keyspace
    return MicrolearningService(
        store=CassandraProgressStore(
            session=session,
            keyspace=keyspace,
            max_attempts=settings.progress_merge_max_attempts,
            write_timeout=settings.progress_write_timeout_seconds,
        ),
        applications=CassandraApplicationStatusProvider(session, keyspace),
        profiles=CassandraUserProfileProvider(
            session, keyspace, email_domain=settings.certification_email_domain
        ),
        submitter=CertificationSubmitter(AlwaysFoodSafeClient(settings), settings),
        settings=settings,
    )


def build_memory_service(settings: Settings) -> MicrolearningService:
    """Wire the service against in-process state (development and tests)."""
    return MicrolearningService(
        store=InMemoryProgressStore(),
        applications=InMemoryApplicationStatusProvider(),
        profiles=InMemoryUserProfileProvider(
            email_domain=settings.certification_email_domain
        ),
        submitter=CertificationSubmitter(AlwaysFoodSafeClient(settings), settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        store_backend=settings.progress_store_backend,
    )

    service: MicrolearningService | None = None
    backend = "memory"

    if settings.progress_store_backend == "cassandra":
        try:
            session = await init_async_cassandra()
            logger.info("cassandra_initialized")
            service = build_cassandra_service(session, settings)
            backend = "cassandra"
        except (ConnectionError, *TRANSIENT_DRIVER_ERRORS) as e:
            if settings.is_production:
                raise
            logger.warning(
                "database_init_skipped",
                error=str(e),
                message="Running with in-memory progress store",
            )

    if service is None:
        service = build_memory_service(settings)

    app.state.microlearning_service = service
    app.state.store_backend = backend
    logger.info(
        "microlearning_service_initialized",
        store_backend=backend,
        certification_configured=settings.certification_configured,
    )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if backend == "cassandra":
        await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Never expose stack traces; the handlers below log details internally
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Microlearning progress and certification API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        # Structured details (missing videos, access level) ride along
        extra: dict[str, Any] = {}
        message = exc.detail
        if isinstance(exc.detail, dict):
            extra = {k: v for k, v in exc.detail.items() if k != "message"}
            message = exc.detail.get("message", "Request failed")

        return ORJSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content={
                "error": True,
                "message": str(message)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                or exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
                **extra,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged internally; callers get a generic message.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(microlearning_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Microlearning API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
