# cache_store.py – stockage clé/valeur des CacheRecord (mémoire ou Redis)

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from typing import Optional, Protocol

import redis.asyncio as aioredis
import redis.exceptions as _redis_exc

from wagerboard.models.entries import CacheRecord

log = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Key-value store behind the CacheLayer: one record per key."""

    async def get(self, key: str) -> Optional[CacheRecord]: ...

    async def put(self, key: str, record: CacheRecord) -> None: ...


class MemoryCacheStore:
    """
    Process-wide dict of records.

    Unbounded by default: only the current and previous keys of each site are
    ever asked for. ``max_keys`` turns it into an LRU.
    """

    def __init__(self, max_keys: Optional[int] = None):
        self._records: "OrderedDict[str, CacheRecord]" = OrderedDict()
        self._max_keys = max_keys
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, key: str) -> Optional[CacheRecord]:
        async with self._lock:
            record = self._records.get(key)
            if record is not None and self._max_keys:
                self._records.move_to_end(key)
            return record

    async def put(self, key: str, record: CacheRecord) -> None:
        async with self._lock:
            self._records[key] = record
            self._records.move_to_end(key)
            if self._max_keys:
                while len(self._records) > self._max_keys:
                    evicted, _ = self._records.popitem(last=False)
                    log.debug(f"Evicted cache key {evicted}")


class RedisCacheStore:
    """
    Records serialized as JSON under ``<prefix><key>``, no expiry.

    Redis being down never fails a request: a read error is a miss, a write
    error only loses the copy.
    """

    def __init__(self, url: str, prefix: str = "wagerboard:", client=None):
        if client is None:
            client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        self._redis = client
        self._prefix = prefix

    async def _drop(self, key: str) -> None:
        try:
            await self._redis.delete(self._prefix + key)
        except _redis_exc.RedisError as e:
            log.warning(f"Redis delete failed for {key}: {e!r}")

    async def get(self, key: str) -> Optional[CacheRecord]:
        try:
            raw = await self._redis.get(self._prefix + key)
        except _redis_exc.ResponseError:
            await self._drop(key)
            return None
        except _redis_exc.RedisError as e:
            log.warning(f"Redis read failed for {key}, treating as miss: {e!r}")
            return None
        if not raw:
            return None
        try:
            return CacheRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            log.warning(f"Dropping unreadable cache record {key}: {e}")
            await self._drop(key)
            return None

    async def put(self, key: str, record: CacheRecord) -> None:
        data = json.dumps(record.to_dict())
        try:
            try:
                await self._redis.set(self._prefix + key, data)
            except _redis_exc.ResponseError:
                await self._redis.delete(self._prefix + key)
                await self._redis.set(self._prefix + key, data)
        except _redis_exc.RedisError as e:
            log.warning(f"Redis write failed for {key}, record not kept: {e!r}")

    async def close(self) -> None:
        await self._redis.aclose()


def build_store(redis_url: Optional[str] = None, max_keys: Optional[int] = None) -> CacheStore:
    if redis_url:
        log.info("Using Redis cache store")
        return RedisCacheStore(redis_url)
    return MemoryCacheStore(max_keys=max_keys)
