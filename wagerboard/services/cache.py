# wagerboard/services/cache.py
# ============================================================================
# Cache-aside par (source, fenêtre) avec repli sur données périmées
# et un seul fetch en vol par clé
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Callable, Dict, Mapping, Optional

from wagerboard.db.cache_store import CacheStore, MemoryCacheStore
from wagerboard.errors import RateLimitError, UpstreamError, ValidationError
from wagerboard.models.entries import CacheRecord, CacheResult
from wagerboard.services.period import PeriodWindow, iso_no_ms, now_ms
from wagerboard.sources.base import SourceAdapter

log = logging.getLogger(__name__)


def cache_key(source_id: str, window: PeriodWindow) -> str:
    return f"{source_id}:{window.after_ms}:{window.before_ms}"


def stale_warning(source_id: str, error: UpstreamError) -> str:
    name = source_id.capitalize()
    if isinstance(error, RateLimitError):
        return f"{name} is rate-limiting. Showing cached results."
    return f"{name} is unavailable right now. Showing cached results."


class CacheLayer:
    """
    TTL cache in front of the source adapters.

    A fresh record is served as is. An expired or missing one triggers a
    fetch; if that fetch fails, whatever record exists for the key (even
    expired) is served with a warning. With no record at all the
    UpstreamError propagates and nothing is stored.

    Concurrent misses on the same key share a single in-flight fetch.
    """

    def __init__(
        self,
        adapters: Mapping[str, SourceAdapter],
        ttls_ms: Mapping[str, int],
        store: Optional[CacheStore] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._adapters = dict(adapters)
        self._ttls_ms = dict(ttls_ms)
        self.store = store if store is not None else MemoryCacheStore()
        self._clock = clock
        self._inflight: Dict[str, asyncio.Future] = {}
        self.stats: Counter = Counter()

    async def get_or_fetch(self, source_id: str, window: PeriodWindow) -> CacheResult:
        adapter = self._adapters.get(source_id)
        if adapter is None:
            raise ValidationError("Unknown site")

        key = cache_key(source_id, window)
        record = await self.store.get(key)

        if record is not None and record.is_fresh(self._clock()):
            self.stats["hits"] += 1
            log.debug(f"[{source_id}] cache hit {key}")
            return CacheResult(
                entries=list(record.entries),
                served_from_cache=True,
                fetched_at_ms=record.fetched_at_ms,
                next_refresh_at_ms=record.expires_at_ms,
            )

        try:
            fresh = await self._fetch_once(key, source_id, adapter, window)
        except UpstreamError as e:
            self.stats["failures"] += 1
            if record is None:
                raise
            self.stats["stale"] += 1
            age_s = (self._clock() - record.fetched_at_ms) / 1000
            log.warning(
                f"[{source_id}] fetch failed for {key}, serving cached rows from {age_s:.0f}s ago: {e}"
            )
            return CacheResult(
                entries=list(record.entries),
                served_from_cache=True,
                fetched_at_ms=record.fetched_at_ms,
                next_refresh_at_ms=record.expires_at_ms,
                warning=stale_warning(source_id, e),
            )

        return CacheResult(
            entries=list(fresh.entries),
            served_from_cache=False,
            fetched_at_ms=fresh.fetched_at_ms,
            next_refresh_at_ms=fresh.expires_at_ms,
        )

    async def _fetch_once(
        self, key: str, source_id: str, adapter: SourceAdapter, window: PeriodWindow
    ) -> CacheRecord:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, source_id, adapter, window))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            self.stats["joined"] += 1
            log.debug(f"[{source_id}] joining in-flight fetch for {key}")
        # shield : une requête abandonnée n'annule pas le fetch partagé
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()  # marque l'erreur comme lue si plus personne n'attend

    async def _refresh(
        self, key: str, source_id: str, adapter: SourceAdapter, window: PeriodWindow
    ) -> CacheRecord:
        self.stats["fetches"] += 1
        log.info(
            f"[{source_id}] fetching {iso_no_ms(window.after_ms)} -> {iso_no_ms(window.before_ms)}"
        )
        entries = await adapter.fetch(window)
        record = CacheRecord(
            key=key,
            fetched_at_ms=self._clock(),
            ttl_ms=self._ttls_ms[source_id],
            entries=tuple(entries),
        )
        await self.store.put(key, record)
        log.info(f"[{source_id}] cached {len(entries)} rows under {key}")
        return record

    def snapshot(self) -> Dict[str, int]:
        data = {name: self.stats.get(name, 0) for name in ("hits", "fetches", "joined", "stale", "failures")}
        data["inflight"] = len(self._inflight)
        return data

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()
