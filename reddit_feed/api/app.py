"""
FastAPI application factory for the token broker.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reddit_feed import __version__
from reddit_feed.api.dependencies import cleanup_dependencies
from reddit_feed.api.routes import health, oauth
from reddit_feed.config.settings import get_settings
from reddit_feed.observability.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    if not settings.reddit_configured:
        logger.warning("Reddit client credentials missing; token endpoints will return 500")
    logger.info("Token broker starting up")

    yield

    logger.info("Token broker shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title="Reddit Feed Token Broker",
        description="""
Exchanges Reddit authorization codes and refresh tokens without exposing
the client secret to browsers.

## Authentication

`POST /reddit-auth/refresh` requires `Authorization: Bearer <service key>`
when `BROKER_SERVICE_KEYS` is set.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Service health checks"},
            {"name": "oauth", "description": "Reddit code exchange and token refresh"},
        ],
    )

    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging and correlation ID
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        bind_context(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(oauth.router, tags=["oauth"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Reddit OAuth API. Available endpoints: /reddit-auth/callback, /reddit-auth/refresh",
            "version": __version__,
            "docs": "/docs",
        }

    return app
