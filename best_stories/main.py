"""FastAPI application entry point.

Best Stories API - Top-N Hacker News best stories served from an in-memory
cache that is built at startup and refreshed in the background.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from best_stories.routes import api_router
from best_stories.schemas import ErrorResponse
from best_stories.services.cache_lifecycle import CacheLifecycle
from best_stories.services.errors import CacheNotReady, StoriesError
from best_stories.services.hacker_news_client import HackerNewsClient
from best_stories.settings import Settings, get_settings
from best_stories.stores.story_cache import StoryCache

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Starts the cache loop on startup; stops it and closes the upstream
    client on shutdown.
    """
    lifecycle: CacheLifecycle = app.state.cache_lifecycle
    client: HackerNewsClient = app.state.hacker_news_client

    # Startup
    lifecycle.start()

    yield

    # Shutdown
    await lifecycle.stop()
    await client.close()
    logger.info("Upstream client closed")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    This is the composition root: the story cache, the upstream client and
    the lifecycle are built once here and shared through `app.state`.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Best Hacker News stories, ranked by score",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    store = StoryCache()
    client = HackerNewsClient(
        base_url=settings.hacker_news_api_url,
        timeout=settings.upstream_timeout_seconds,
        max_connections=settings.fetch_concurrency,
    )
    app.state.settings = settings
    app.state.story_cache = store
    app.state.hacker_news_client = client
    app.state.cache_lifecycle = CacheLifecycle.from_settings(store, client, settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoriesError)
    async def stories_exception_handler(request: Request, exc: StoriesError) -> JSONResponse:
        """Map domain errors to their status code; not-ready is retryable."""
        headers = None
        if isinstance(exc, CacheNotReady):
            headers = {"Retry-After": str(settings.cache_not_ready_retry_after_seconds)}
        else:
            logger.error(f"{exc.code} on {request.url.path}: {exc}")
        body = ErrorResponse.build(code=exc.code, message=str(exc))
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.url.path}")
        body = ErrorResponse.build(
            code="INTERNAL_ERROR",
            message=str(exc) if settings.debug else "Internal server error",
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    # Include API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "best_stories.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
