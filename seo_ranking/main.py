"""
SEO Readiness & Ranking - Main Application Entry Point
FastAPI application with lifespan management.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from seo_ranking.api.v1.routes import health, measure, ranking
from seo_ranking.core.config import get_settings
from seo_ranking.core.logging import configure_logging
from seo_ranking.core.redis import close_redis_pool, get_redis_client

logger = structlog.get_logger(__name__)
settings = get_settings()

REQUEST_ID_HEADER = "x-request-id"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Manage application lifecycle: startup and shutdown."""
    configure_logging()
    logger.info(
        "Starting SEO Readiness service",
        version=settings.APP_VERSION,
        env=settings.ENV,
        kv_backend=settings.KV_BACKEND,
        ranking_capacity=settings.RANKING_MAX_ENTRIES,
    )

    # The memory backend needs no connection
    if settings.KV_BACKEND == "redis":
        redis = await get_redis_client()
        await redis.ping()
        logger.info("Redis connection verified", namespace=settings.KV_NAMESPACE)

    yield

    await close_redis_pool()
    logger.info("Application shutdown complete")


def create_application() -> FastAPI:
    app = FastAPI(
        title="SEO Readiness API",
        description="SEO readiness scoring and a paginated site leaderboard.",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        """Tag every log line of a request with its id and path."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(measure.router, prefix="/api/v1/measure", tags=["Measure"])
    app.include_router(ranking.router, prefix="/api/v1/ranking", tags=["Ranking"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", error=str(exc), error_type=type(exc).__name__, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get(REQUEST_ID_HEADER)},
        )

    return app


app = create_application()
