"""Tests for the tag-based cache tiers."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from galleria.services.tag_cache import (
    CacheSweeper,
    HttpPurgeBackend,
    InMemoryTagCache,
    InvalidationError,
    TagCacheBackend,
    TieredTagCache,
)


class FailingBackend(TagCacheBackend):
    """Tier that is always unreachable."""

    name = "broken"

    def __init__(self):
        self.calls: list[str] = []

    async def invalidate(self, tag: str) -> None:
        self.calls.append(tag)
        raise InvalidationError("tier down", tags=[tag])


class RecordingBackend(TagCacheBackend):
    name = "recording"

    def __init__(self):
        self.calls: list[str] = []

    async def invalidate(self, tag: str) -> None:
        self.calls.append(tag)


# =============================================================================
# InMemoryTagCache
# =============================================================================


class TestInMemoryTagCache:
    """Tests for the application cache tier."""

    async def test_get_missing_returns_none(self):
        cache = InMemoryTagCache()
        assert await cache.get("nope") is None
        assert cache.misses == 1

    async def test_set_then_get(self):
        cache = InMemoryTagCache()
        await cache.set("photos:g1:f1", ["a", "b"], tags=["drive-photos:f1"])

        assert await cache.get("photos:g1:f1") == ["a", "b"]
        assert cache.hits == 1

    async def test_invalidate_evicts_every_key_under_tag(self):
        cache = InMemoryTagCache()
        await cache.set("k1", 1, tags=["drive-photos:f1"])
        await cache.set("k2", 2, tags=["drive-photos:f1", "gallery-photos:g1"])
        await cache.set("k3", 3, tags=["drive-photos:f2"])

        await cache.invalidate("drive-photos:f1")

        assert await cache.get("k1") is None
        assert await cache.get("k2") is None
        assert await cache.get("k3") == 3

    async def test_invalidate_cleans_other_tag_indexes(self):
        cache = InMemoryTagCache()
        await cache.set("k2", 2, tags=["drive-photos:f1", "gallery-photos:g1"])

        await cache.invalidate("drive-photos:f1")

        assert await cache.tagged_keys("gallery-photos:g1") == set()
        assert len(cache) == 0

    async def test_invalidate_unknown_tag_is_noop(self):
        cache = InMemoryTagCache()
        await cache.set("k1", 1, tags=["cover:p1"])

        await cache.invalidate("cover:p2")

        assert await cache.get("k1") == 1

    async def test_set_replaces_previous_tags(self):
        cache = InMemoryTagCache()
        await cache.set("k1", 1, tags=["a"])
        await cache.set("k1", 2, tags=["b"])

        await cache.invalidate("a")

        assert await cache.get("k1") == 2

    async def test_expired_entry_is_a_miss(self):
        cache = InMemoryTagCache()
        await cache.set("k1", 1, tags=["a"], ttl=0)

        assert await cache.get("k1") is None
        assert await cache.tagged_keys("a") == set()

    async def test_cleanup_expired(self):
        cache = InMemoryTagCache(default_ttl=0)
        await cache.set("k1", 1, tags=["a"])
        await cache.set("k2", 2, tags=["a"], ttl=3600)

        removed = await cache.cleanup_expired()

        assert removed == 1
        assert await cache.tagged_keys("a") == {"k2"}


class TestInMemoryTagCacheBound:
    """Tests for size limits on the application cache tier."""

    async def test_width_variants_do_not_accumulate(self):
        cache = InMemoryTagCache(max_entries=100)
        for width in range(16, 4001):
            await cache.set(f"cover:p1:{width}", b"jpeg", tags=["cover:p1"], ttl=0.01)

        assert len(cache) <= 100
        keys = await cache.tagged_keys("cover:p1")
        assert len(keys) <= 100
        assert "cover:p1:4000" in keys
        assert "cover:p1:16" not in keys

    async def test_expired_entries_go_before_live_ones(self):
        cache = InMemoryTagCache(max_entries=3)
        await cache.set("live", 1, ttl=3600)
        await cache.set("stale-1", 2, ttl=0)
        await cache.set("stale-2", 3, ttl=0)

        await cache.set("new", 4, ttl=3600)

        assert await cache.get("live") == 1
        assert await cache.get("new") == 4
        assert len(cache) == 2
        assert cache.evictions == 0

    async def test_least_recently_used_is_evicted(self):
        cache = InMemoryTagCache(max_entries=2)
        await cache.set("a", 1, tags=["t"])
        await cache.set("b", 2, tags=["t"])
        await cache.get("a")

        await cache.set("c", 3, tags=["t"])

        assert await cache.get("b") is None
        assert await cache.get("a") == 1
        assert await cache.tagged_keys("t") == {"a", "c"}
        assert cache.evictions == 1

    async def test_overwrite_at_capacity_evicts_nothing(self):
        cache = InMemoryTagCache(max_entries=2)
        await cache.set("a", 1)
        await cache.set("b", 2)

        await cache.set("a", 10)

        assert await cache.get("b") == 2
        assert await cache.get("a") == 10
        assert cache.evictions == 0


class TestCacheSweeper:
    async def test_sweeps_expired_entries_periodically(self):
        cache = InMemoryTagCache()
        await cache.set("stale", 1, tags=["a"], ttl=0.01)
        await cache.set("live", 2, tags=["a"], ttl=3600)
        sweeper = CacheSweeper(cache, interval=0.05)

        await sweeper.start()
        try:
            await asyncio.sleep(0.2)
        finally:
            await sweeper.stop()

        assert len(cache) == 1
        assert await cache.tagged_keys("a") == {"live"}

    async def test_stop_without_start(self):
        sweeper = CacheSweeper(InMemoryTagCache(), interval=1)
        await sweeper.stop()


# =============================================================================
# HttpPurgeBackend
# =============================================================================


class TestHttpPurgeBackend:
    """Tests for the CDN purge tier."""

    async def test_posts_tag_with_bearer_token(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            backend = HttpPurgeBackend(http, "https://cdn.test/purge", token="secret")
            await backend.invalidate("drive-photos:f1")

        assert len(requests) == 1
        assert requests[0].headers["authorization"] == "Bearer secret"
        assert json.loads(requests[0].content) == {"tags": ["drive-photos:f1"]}

    async def test_rejected_purge_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))

        async with httpx.AsyncClient(transport=transport) as http:
            backend = HttpPurgeBackend(http, "https://cdn.test/purge")
            with pytest.raises(InvalidationError) as exc_info:
                await backend.invalidate("cover:p1")

        assert exc_info.value.tags == ["cover:p1"]

    async def test_unreachable_cdn_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            backend = HttpPurgeBackend(http, "https://cdn.test/purge")
            with pytest.raises(InvalidationError):
                await backend.invalidate("cover:p1")


# =============================================================================
# TieredTagCache
# =============================================================================


class TestTieredTagCache:
    """Tests for invalidation fan-out."""

    async def test_invalidates_every_tier(self):
        app_cache = InMemoryTagCache()
        await app_cache.set("k1", 1, tags=["a"])
        recorder = RecordingBackend()

        await TieredTagCache([app_cache, recorder]).invalidate("a")

        assert await app_cache.get("k1") is None
        assert recorder.calls == ["a"]

    async def test_failing_tier_does_not_stop_others(self):
        broken = FailingBackend()
        recorder = RecordingBackend()

        with pytest.raises(InvalidationError) as exc_info:
            await TieredTagCache([broken, recorder]).invalidate("a")

        assert recorder.calls == ["a"]
        assert exc_info.value.tags == ["a"]
        assert "broken" in str(exc_info.value)
