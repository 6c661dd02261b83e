"""Tag-based cache tiers.

Derived artifacts (photo listings, cover images) are stored under a cache
key and grouped under one or more tags. Invalidation always works by tag;
there is no "flush everything" operation.

Tiers:
- ``InMemoryTagCache``: the application tier read paths store into.
- ``HttpPurgeBackend``: a CDN/edge tier purged by surrogate key.
- ``TieredTagCache``: fans one invalidation out to every tier.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from galleria.core.logging import get_logger

logger = get_logger(__name__)


class InvalidationError(Exception):
    """Raised when one or more tags could not be evicted from a tier."""

    def __init__(self, message: str, tags: list[str] | None = None):
        super().__init__(message)
        self.tags = tags or []


class TagCacheBackend(ABC):
    """Capability to evict everything cached under a tag."""

    name: str = "backend"

    @abstractmethod
    async def invalidate(self, tag: str) -> None:
        """Evict every artifact grouped under ``tag``.

        Invalidating a tag with nothing under it is a no-op.

        Raises:
            InvalidationError: If the tier could not be reached.
        """


@dataclass
class _Entry:
    value: Any
    tags: frozenset[str]
    expires_at: float


class InMemoryTagCache(TagCacheBackend):
    """Process-local TTL cache indexed by tag.

    Bounded: once ``max_entries`` is reached, ``set`` first drops expired
    entries and then the least recently used ones. Thread-safe using asyncio
    locks.
    """

    name = "app"

    def __init__(self, default_ttl: float = 300.0, max_entries: int = 2048):
        """Initialize cache.

        Args:
            default_ttl: Time-to-live for entries stored without an explicit TTL.
            max_entries: Maximum number of live entries held at once.
        """
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._entries: dict[str, _Entry] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    async def get(self, key: str) -> Any | None:
        """Get a cached value if present and not expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if time.monotonic() >= entry.expires_at:
                self._remove(key)
                self.misses += 1
                return None
            # Most recently used entries sit at the end
            self._entries[key] = self._entries.pop(key)
            self.hits += 1
            return entry.value

    async def set(
        self,
        key: str,
        value: Any,
        tags: list[str] | tuple[str, ...] = (),
        ttl: float | None = None,
    ) -> None:
        """Store a value under a key and group it under tags.

        Args:
            key: Cache key.
            value: Value to cache.
            tags: Tags the value can later be evicted by.
            ttl: Time-to-live in seconds (defaults to ``default_ttl``).
        """
        async with self._lock:
            self._remove(key)
            if len(self._entries) >= self.max_entries:
                self._make_room()
            entry = _Entry(
                value=value,
                tags=frozenset(tags),
                expires_at=time.monotonic() + (self.default_ttl if ttl is None else ttl),
            )
            self._entries[key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(key)
            logger.debug("cache_set", key=key, tags=sorted(entry.tags))

    async def invalidate(self, tag: str) -> None:
        """Evict every entry grouped under a tag."""
        async with self._lock:
            keys = self._tag_index.pop(tag, set())
            for key in list(keys):
                self._remove(key)
            if keys:
                logger.debug("cache_tag_evicted", tag=tag, entries_removed=len(keys))

    async def tagged_keys(self, tag: str) -> set[str]:
        """Get the keys currently grouped under a tag."""
        async with self._lock:
            return set(self._tag_index.get(tag, set()))

    async def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            removed = self._purge_expired()
            if removed:
                logger.debug("cache_cleanup", entries_removed=removed)
            return removed

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> int:
        # Caller holds the lock
        now = time.monotonic()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            self._remove(key)
        return len(expired)

    def _make_room(self) -> None:
        # Caller holds the lock
        expired = self._purge_expired()
        evicted = 0
        while self._entries and len(self._entries) >= self.max_entries:
            self._remove(next(iter(self._entries)))
            evicted += 1
        self.evictions += evicted
        logger.debug("cache_full", expired_removed=expired, evicted=evicted)

    def _remove(self, key: str) -> None:
        # Caller holds the lock
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]


class HttpPurgeBackend(TagCacheBackend):
    """CDN/edge tier purged through a surrogate-key purge endpoint."""

    name = "cdn"

    def __init__(self, http: httpx.AsyncClient, purge_url: str, token: str | None = None):
        """Initialize the purge backend.

        Args:
            http: Shared HTTP client.
            purge_url: Endpoint accepting ``{"tags": [...]}``.
            token: Optional bearer token for the purge API.
        """
        self.http = http
        self.purge_url = purge_url
        self.token = token

    async def invalidate(self, tag: str) -> None:
        """Ask the CDN to purge everything carrying ``tag``."""
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self.http.post(self.purge_url, json={"tags": [tag]}, headers=headers)
        except httpx.HTTPError as e:
            raise InvalidationError(f"CDN purge request failed: {e}", tags=[tag]) from e

        if not response.is_success:
            raise InvalidationError(
                f"CDN purge rejected with status {response.status_code}", tags=[tag]
            )


class TieredTagCache(TagCacheBackend):
    """Invalidates a tag on every tier, app tier first."""

    name = "tiered"

    def __init__(self, tiers: list[TagCacheBackend]):
        self.tiers = list(tiers)

    async def invalidate(self, tag: str) -> None:
        """Evict a tag everywhere; every tier is attempted even if one fails."""
        failed: list[str] = []
        for tier in self.tiers:
            try:
                await tier.invalidate(tag)
            except InvalidationError as e:
                logger.warning("cache_tier_invalidation_failed", tier=tier.name, tag=tag, error=str(e))
                failed.append(tier.name)

        if failed:
            raise InvalidationError(
                f"Tag {tag} not evicted from tier(s): {', '.join(failed)}", tags=[tag]
            )


class CacheSweeper:
    """Periodically drops expired entries from an ``InMemoryTagCache``."""

    def __init__(self, cache: InMemoryTagCache, interval: float):
        self.cache = cache
        self.interval = interval
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("cache_sweeper_started", interval_seconds=self.interval)

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("cache_sweeper_stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.cache.cleanup_expired()
            except Exception as e:
                logger.error("cache_sweep_error", error=str(e))
