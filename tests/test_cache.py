"""Unit tests for the cache-aside layer and its stores."""

import asyncio
import json

import pytest
import redis.exceptions as redis_exc
from unittest.mock import AsyncMock, MagicMock

from conftest import FakeAdapter, FakeClock, rows
from wagerboard.db.cache_store import MemoryCacheStore, RedisCacheStore, build_store
from wagerboard.errors import RateLimitError, UpstreamError, ValidationError
from wagerboard.models.entries import CacheRecord, LeaderboardEntry
from wagerboard.services.cache import CacheLayer, cache_key
from wagerboard.services.period import PeriodWindow
from wagerboard.sources.rostake import RostakeAdapter

TTL = 15 * 60 * 1000
WINDOW = PeriodWindow(after_ms=1_000, before_ms=2_000, period_index=0, duration_ms=1_000)
OTHER = PeriodWindow(after_ms=2_000, before_ms=3_000, period_index=1, duration_ms=1_000)


def _layer(adapter, clock, store=None):
    return CacheLayer({"fake": adapter}, {"fake": TTL}, store=store, clock=clock)


@pytest.mark.asyncio
class TestCacheLayer:
    """Cache-aside policy: fresh hit, refresh, stale fallback."""

    async def test_second_call_within_ttl_hits_cache(self, clock):
        adapter = FakeAdapter([rows(("a", 5), ("b", 3))])
        layer = _layer(adapter, clock)

        first = await layer.get_or_fetch("fake", WINDOW)
        clock.advance(TTL - 1)
        second = await layer.get_or_fetch("fake", WINDOW)

        assert adapter.calls == 1
        assert first.served_from_cache is False
        assert second.served_from_cache is True
        assert second.entries == first.entries
        assert second.warning is None
        assert second.next_refresh_at_ms == first.fetched_at_ms + TTL

    async def test_expired_record_is_refreshed(self, clock):
        adapter = FakeAdapter([rows(("a", 5)), rows(("a", 9))])
        layer = _layer(adapter, clock)

        await layer.get_or_fetch("fake", WINDOW)
        clock.advance(TTL)
        result = await layer.get_or_fetch("fake", WINDOW)

        assert adapter.calls == 2
        assert result.served_from_cache is False
        assert result.entries == [LeaderboardEntry("a", 9.0, None, False)]

    async def test_windows_are_cached_separately(self, clock):
        adapter = FakeAdapter([rows(("a", 1))])
        layer = _layer(adapter, clock)

        await layer.get_or_fetch("fake", WINDOW)
        await layer.get_or_fetch("fake", OTHER)

        assert adapter.calls == 2
        assert len(layer.store) == 2

    async def test_stale_record_served_on_failure(self, clock):
        adapter = FakeAdapter([rows(("a", 5)), RateLimitError("fake", "Too many checks", status=429)])
        layer = _layer(adapter, clock)

        fresh = await layer.get_or_fetch("fake", WINDOW)
        clock.advance(TTL + 1)
        stale = await layer.get_or_fetch("fake", WINDOW)

        assert stale.served_from_cache is True
        assert stale.entries == fresh.entries
        assert stale.warning == "Fake is rate-limiting. Showing cached results."
        assert stale.fetched_at_ms == fresh.fetched_at_ms
        assert layer.stats["stale"] == 1

    async def test_stale_warning_for_other_failures(self, clock):
        adapter = FakeAdapter([rows(("a", 5)), UpstreamError("fake", "down", status=503)])
        layer = _layer(adapter, clock)

        await layer.get_or_fetch("fake", WINDOW)
        clock.advance(TTL)
        stale = await layer.get_or_fetch("fake", WINDOW)

        assert "unavailable" in stale.warning

    async def test_failure_without_record_propagates(self, clock):
        adapter = FakeAdapter([UpstreamError("fake", "down", status=500, details={"error": "x"})])
        store = MemoryCacheStore()
        layer = _layer(adapter, clock, store)

        with pytest.raises(UpstreamError) as exc:
            await layer.get_or_fetch("fake", WINDOW)

        assert exc.value.details == {"error": "x"}
        assert await store.get(cache_key("fake", WINDOW)) is None
        assert layer.stats["failures"] == 1

    async def test_failed_refresh_keeps_old_record(self, clock):
        adapter = FakeAdapter([rows(("a", 5)), UpstreamError("fake", "down")])
        layer = _layer(adapter, clock)

        first = await layer.get_or_fetch("fake", WINDOW)
        clock.advance(TTL)
        await layer.get_or_fetch("fake", WINDOW)

        record = await layer.store.get(cache_key("fake", WINDOW))
        assert record.fetched_at_ms == first.fetched_at_ms

    async def test_unknown_source(self, clock):
        layer = _layer(FakeAdapter([rows()]), clock)
        with pytest.raises(ValidationError):
            await layer.get_or_fetch("nope", WINDOW)

    async def test_concurrent_misses_share_one_fetch(self, clock):
        adapter = FakeAdapter([rows(("a", 1))], delay=0.01)
        layer = _layer(adapter, clock)

        results = await asyncio.gather(*(layer.get_or_fetch("fake", WINDOW) for _ in range(5)))

        assert adapter.calls == 1
        assert all(r.entries == results[0].entries for r in results)
        assert layer.stats["joined"] == 4
        assert layer.snapshot()["inflight"] == 0

    async def test_concurrent_failures_all_raise(self, clock):
        adapter = FakeAdapter([UpstreamError("fake", "down")], delay=0.01)
        layer = _layer(adapter, clock)

        results = await asyncio.gather(
            *(layer.get_or_fetch("fake", WINDOW) for _ in range(3)), return_exceptions=True
        )

        assert adapter.calls == 1
        assert all(isinstance(r, UpstreamError) for r in results)

    async def test_cancelled_caller_does_not_cancel_fetch(self, clock):
        adapter = FakeAdapter([rows(("a", 1))], delay=0.05)
        layer = _layer(adapter, clock)

        task = asyncio.ensure_future(layer.get_or_fetch("fake", WINDOW))
        await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.sleep(0.1)

        assert await layer.store.get(cache_key("fake", WINDOW)) is not None

    async def test_close_closes_adapters(self, clock):
        adapter = FakeAdapter([rows()])
        layer = _layer(adapter, clock)
        await layer.close()
        assert adapter.closed


@pytest.mark.asyncio
class TestMemoryCacheStore:

    async def test_overwrite(self):
        store = MemoryCacheStore()
        await store.put("k", CacheRecord("k", 1, 10, ()))
        await store.put("k", CacheRecord("k", 2, 10, ()))

        assert (await store.get("k")).fetched_at_ms == 2
        assert len(store) == 1

    async def test_lru_bound(self):
        store = MemoryCacheStore(max_keys=2)
        for key in ("a", "b"):
            await store.put(key, CacheRecord(key, 1, 10, ()))
        await store.get("a")
        await store.put("c", CacheRecord("c", 1, 10, ()))

        assert await store.get("b") is None
        assert await store.get("a") is not None
        assert await store.get("c") is not None


@pytest.mark.asyncio
class TestRedisCacheStore:

    async def test_round_trip_through_json(self):
        fake = AsyncMock()
        saved = {}

        async def _set(key, value):
            saved[key] = value

        async def _get(key):
            return saved.get(key)

        fake.set.side_effect = _set
        fake.get.side_effect = _get
        store = RedisCacheStore("redis://unused", client=fake)
        record = CacheRecord("k", 5, 10, (LeaderboardEntry("a", 1.5, None, True),))

        await store.put("k", record)

        assert json.loads(saved["wagerboard:k"])["fetchedAt"] == 5
        assert await store.get("k") == record

    async def test_unreadable_record_is_dropped(self):
        fake = AsyncMock()
        fake.get.return_value = "{not json"
        store = RedisCacheStore("redis://unused", client=fake)

        assert await store.get("k") is None
        fake.delete.assert_awaited_once_with("wagerboard:k")

    async def test_connection_error_on_get_is_a_miss(self):
        fake = AsyncMock()
        fake.get.side_effect = redis_exc.ConnectionError("Connection refused")
        store = RedisCacheStore("redis://unused", client=fake)

        assert await store.get("k") is None
        fake.delete.assert_not_awaited()

    async def test_timeout_on_put_is_swallowed(self):
        fake = AsyncMock()
        fake.set.side_effect = redis_exc.TimeoutError("Timeout writing to socket")
        store = RedisCacheStore("redis://unused", client=fake)

        await store.put("k", CacheRecord("k", 1, 10, ()))

        fake.set.assert_awaited_once()


@pytest.mark.asyncio
class TestCacheLayerStoreFailures:
    """A broken Redis degrades to fetching upstream on every request."""

    def _broken_store(self):
        fake = AsyncMock()
        fake.get.side_effect = redis_exc.ConnectionError("Connection refused")
        fake.set.side_effect = redis_exc.ConnectionError("Connection refused")
        return RedisCacheStore("redis://unused", client=fake)

    async def test_fresh_rows_served_when_store_is_down(self, clock):
        adapter = FakeAdapter([rows(("a", 5))])
        layer = _layer(adapter, clock, store=self._broken_store())

        result = await layer.get_or_fetch("fake", WINDOW)

        assert result.served_from_cache is False
        assert result.entries == [LeaderboardEntry("a", 5.0, None, False)]

    async def test_upstream_error_still_propagates(self, clock):
        adapter = FakeAdapter([UpstreamError("fake", "down", status=503)])
        layer = _layer(adapter, clock, store=self._broken_store())

        with pytest.raises(UpstreamError):
            await layer.get_or_fetch("fake", WINDOW)


@pytest.mark.asyncio
class TestUndecodableUpstreamBody:

    async def test_stale_rows_served_for_non_utf8_body(self, clock):
        adapter = RostakeAdapter.build("key")
        resp = AsyncMock()
        resp.status = 200
        resp.headers = {}
        resp.read = AsyncMock(return_value=b"\xff\xfe{bad")
        resp.__aenter__.return_value = resp
        resp.__aexit__.return_value = None
        session = MagicMock()
        session.closed = False
        session.get.return_value = resp
        adapter.client._session = session

        store = MemoryCacheStore()
        key = cache_key("rostake", WINDOW)
        old = (LeaderboardEntry("alice", 10.0, None, False),)
        await store.put(key, CacheRecord(key, clock() - TTL - 1, TTL, old))
        layer = CacheLayer({"rostake": adapter}, {"rostake": TTL}, store=store, clock=clock)

        result = await layer.get_or_fetch("rostake", WINDOW)

        assert result.served_from_cache is True
        assert result.entries == list(old)
        assert result.warning == "Rostake is unavailable right now. Showing cached results."


class TestBuildStore:

    def test_memory_by_default(self):
        store = build_store(None, max_keys=10)
        assert isinstance(store, MemoryCacheStore)

    def test_redis_when_url_set(self):
        store = build_store("redis://localhost:6379/0")
        assert isinstance(store, RedisCacheStore)


class TestStaleSemantics:

    def test_record_freshness(self):
        record = CacheRecord("k", fetched_at_ms=100, ttl_ms=50, entries=())
        assert record.is_fresh(149)
        assert not record.is_fresh(150)

    def test_clock_fixture_type(self):
        assert FakeClock(5)() == 5
