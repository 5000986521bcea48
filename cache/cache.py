from __future__ import annotations

import asyncio
import functools
import hashlib
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from app.logging import get_logger
from cache.stores import CacheEntry, CacheStore, MemoryCacheStore
from ingest.dates import utc_now


log = get_logger("cache")

_MAX_VERBATIM_LEN = 100


def hash_key(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def generate_key(service: str, operation: str, key_input: Any) -> str:
    """Build ``service:operation:input``.

    Short strings without whitespace or colons are embedded verbatim; long
    text and composite values are hashed.
    """
    if isinstance(key_input, str):
        text = key_input.strip()
        verbatim = (
            len(text) <= _MAX_VERBATIM_LEN
            and ":" not in text
            and not any(ch.isspace() for ch in text)
        )
        part = text if verbatim else hash_key(text)
    else:
        part = hash_key(
            json.dumps(key_input, sort_keys=True, separators=(",", ":"), default=str)
        )
    return f"{service}:{operation}:{part}".casefold()


@dataclass
class CacheStats:
    total_entries: int = 0
    total_hits: int = 0
    expired_entries: int = 0
    by_source: dict[str, int] = field(default_factory=dict)


class CacheManager:
    def __init__(
        self,
        store: CacheStore | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        single_flight: bool = True,
    ) -> None:
        self.store = store if store is not None else MemoryCacheStore()
        self.clock = clock
        self.single_flight = single_flight
        self._inflight: dict[str, asyncio.Future] = {}

    async def get(self, key: str) -> Any | None:
        entry = await self.store.get(key)
        if entry is None:
            log.debug(f"cache miss {key}")
            return None
        if entry.expired(self.clock()):
            log.debug(f"cache expired {key}")
            await self.store.delete(key)
            return None
        hits = await self.store.increment_hits(key)
        log.debug(f"cache hit {key} hits={hits}")
        return json.loads(entry.value)

    async def set(
        self, key: str, value: Any, ttl_seconds: int, *, source: str | None = None
    ) -> None:
        now = self.clock()
        await self.store.put(
            CacheEntry(
                key=key,
                value=json.dumps(value, ensure_ascii=False),
                expires_at=now + timedelta(seconds=ttl_seconds),
                source=source,
                hit_count=0,
                created_at=now,
            )
        )
        log.debug(f"cache set {key} ttl={ttl_seconds} source={source}")

    async def delete(self, key: str) -> bool:
        return await self.store.delete(key)

    async def invalidate_source(self, source: str) -> int:
        deleted = await self.store.delete_by_source(source)
        log.info(f"Cache cleared for source {source}: {deleted} entries")
        return deleted

    async def purge_expired(self) -> int:
        deleted = await self.store.delete_expired(self.clock())
        log.info(f"Cache cleanup removed {deleted} expired entries")
        return deleted

    async def stats(self) -> CacheStats:
        now = self.clock()
        stats = CacheStats()
        for entry in await self.store.entries():
            stats.total_entries += 1
            stats.total_hits += entry.hit_count
            if entry.expired(now):
                stats.expired_entries += 1
            if entry.source:
                stats.by_source[entry.source] = stats.by_source.get(entry.source, 0) + 1
        return stats

    async def fetch_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
        *,
        source: str | None = None,
    ) -> tuple[Any, bool]:
        """Return ``(value, from_cache)``."""
        cached_value = await self.get(key)
        if cached_value is not None:
            return cached_value, True

        if not self.single_flight:
            return await self._compute_and_store(key, compute, ttl_seconds, source), False

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._compute_and_store(key, compute, ttl_seconds, source)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda _t, key=key: self._inflight.pop(key, None))
        return await asyncio.shield(task), False

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
        *,
        source: str | None = None,
    ) -> Any:
        value, _ = await self.fetch_or_compute(key, compute, ttl_seconds, source=source)
        return value

    async def _compute_and_store(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
        source: str | None,
    ) -> Any:
        try:
            value = await compute()
        except Exception:
            log.error(f"Failed to compute value for {key}")
            raise
        if value is not None:
            await self.set(key, value, ttl_seconds, source=source)
        return value


def cached(
    cache: CacheManager,
    *,
    service: str,
    operation: str,
    ttl_seconds: int,
    key_input: Callable[..., Any] | None = None,
    source: str | None = None,
):
    """Memoize an async function through ``cache``.

    ``key_input`` maps the call arguments to the key input; the first
    positional argument is used when it is omitted.
    """

    def decorator(fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            raw = key_input(*args, **kwargs) if key_input else (args[0] if args else kwargs)
            key = generate_key(service, operation, raw)
            return await cache.get_or_compute(
                key, lambda: fn(*args, **kwargs), ttl_seconds, source=source or service
            )

        return wrapper

    return decorator
