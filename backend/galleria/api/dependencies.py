"""FastAPI dependencies for process-scoped components.

The HTTP client, cache tiers, invalidation engine and debouncer are built
once in the application lifespan and stored on ``app.state``.
"""

from __future__ import annotations

import httpx
from fastapi import Depends, Request

from galleria.services.debounce import Debouncer
from galleria.services.google_drive import GoogleDriveClient
from galleria.services.invalidation import CacheInvalidationEngine
from galleria.services.tag_cache import InMemoryTagCache


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared outbound HTTP client."""
    return request.app.state.http_client


def get_debouncer(request: Request) -> Debouncer:
    """Get the process-local debouncer."""
    return request.app.state.debouncer


def get_app_cache(request: Request) -> InMemoryTagCache:
    """Get the application cache tier."""
    return request.app.state.app_cache


def get_invalidation_engine(request: Request) -> CacheInvalidationEngine:
    """Get the cache invalidation engine."""
    return request.app.state.invalidation_engine


def get_drive_client(http: httpx.AsyncClient = Depends(get_http_client)) -> GoogleDriveClient:
    """Get a Drive client bound to the shared HTTP client."""
    return GoogleDriveClient(http)
