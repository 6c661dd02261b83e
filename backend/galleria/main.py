"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from galleria.api.router import api_router
from galleria.core.config import settings
from galleria.core.logging import get_logger, setup_logging
from galleria.services.debounce import Debouncer
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.tag_cache import (
    CacheSweeper,
    HttpPurgeBackend,
    InMemoryTagCache,
    TagCacheBackend,
    TieredTagCache,
)

# Initialize logging
setup_logging()
logger = get_logger(__name__)


def build_cache_backend(http: httpx.AsyncClient, app_cache: InMemoryTagCache) -> TieredTagCache:
    """Assemble the cache tiers invalidation fans out to."""
    tiers: list[TagCacheBackend] = [app_cache]
    if settings.cdn_purge_enabled:
        tiers.append(HttpPurgeBackend(http, settings.cdn_purge_url, settings.cdn_purge_token))
    return TieredTagCache(tiers)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.version,
        host=settings.host,
        port=settings.port,
        watch_registration_enabled=settings.watch_registration_enabled,
    )

    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    app_cache = InMemoryTagCache(
        default_ttl=settings.media_cache_ttl,
        max_entries=settings.app_cache_max_entries,
    )
    sweeper = CacheSweeper(app_cache, interval=settings.app_cache_sweep_seconds)
    backend = build_cache_backend(http_client, app_cache)

    app.state.http_client = http_client
    app.state.app_cache = app_cache
    app.state.invalidation_engine = CacheInvalidationEngine(backend)
    app.state.debouncer = Debouncer(delay=settings.webhook_debounce_seconds)

    logger.info("cache_tiers_configured", tiers=[tier.name for tier in backend.tiers])
    await sweeper.start()

    try:
        yield
    finally:
        logger.info("shutting_down_application")
        await sweeper.stop()
        await app.state.debouncer.shutdown()
        await http_client.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Photo galleries backed by Google Drive folders, kept fresh by Drive change notifications",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router)

    return app


# Create the application instance
app = create_app()


def main() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "galleria.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
