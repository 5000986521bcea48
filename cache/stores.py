from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from ingest.dates import parse_iso
from store.db import Database


def _ts(dt: datetime) -> str:
    # Fixed width so SQLite can compare timestamps as text.
    return dt.astimezone(tz=UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class CacheEntry:
    key: str
    value: str
    expires_at: datetime
    source: str | None = None
    hit_count: int = 0
    created_at: datetime | None = None

    def expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class CacheStore(Protocol):
    async def get(self, key: str) -> CacheEntry | None: ...

    async def put(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_by_source(self, source: str) -> int: ...

    async def increment_hits(self, key: str) -> int: ...

    async def delete_expired(self, now: datetime) -> int: ...

    async def entries(self) -> list[CacheEntry]: ...


class MemoryCacheStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
            return replace(entry) if entry is not None else None

    async def put(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = replace(entry)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_by_source(self, source: str) -> int:
        async with self._lock:
            keys = [k for k, e in self._entries.items() if e.source == source]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def increment_hits(self, key: str) -> int:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return 0
            entry.hit_count += 1
            return entry.hit_count

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            keys = [k for k, e in self._entries.items() if e.expired(now)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def entries(self) -> list[CacheEntry]:
        async with self._lock:
            return [replace(e) for e in self._entries.values()]


def _row_to_entry(row) -> CacheEntry:
    return CacheEntry(
        key=str(row["key"]),
        value=str(row["value"]),
        expires_at=parse_iso(str(row["expires_at"])),
        source=row["source"],
        hit_count=int(row["hit_count"]),
        created_at=parse_iso(str(row["created_at"])),
    )


class SqliteCacheStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def get(self, key: str) -> CacheEntry | None:
        with self.db.lock:
            row = self.db.conn.execute(
                """
                SELECT key, value, expires_at, source, hit_count, created_at
                FROM cache
                WHERE key = ?
                LIMIT 1;
                """,
                (key,),
            ).fetchone()
        return _row_to_entry(row) if row is not None else None

    async def put(self, entry: CacheEntry) -> None:
        created_at = entry.created_at or entry.expires_at
        with self.db.lock:
            self.db.conn.execute(
                """
                INSERT INTO cache(key, value, expires_at, source, hit_count, created_at)
                VALUES(?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value = excluded.value,
                  expires_at = excluded.expires_at,
                  source = excluded.source,
                  hit_count = excluded.hit_count,
                  created_at = excluded.created_at;
                """,
                (
                    entry.key,
                    entry.value,
                    _ts(entry.expires_at),
                    entry.source,
                    entry.hit_count,
                    _ts(created_at),
                ),
            )
            self.db.conn.commit()

    async def delete(self, key: str) -> bool:
        with self.db.lock:
            cur = self.db.conn.execute("DELETE FROM cache WHERE key = ?;", (key,))
            self.db.conn.commit()
        return cur.rowcount > 0

    async def delete_by_source(self, source: str) -> int:
        with self.db.lock:
            cur = self.db.conn.execute("DELETE FROM cache WHERE source = ?;", (source,))
            self.db.conn.commit()
        return cur.rowcount

    async def increment_hits(self, key: str) -> int:
        with self.db.lock:
            self.db.conn.execute(
                "UPDATE cache SET hit_count = hit_count + 1 WHERE key = ?;", (key,)
            )
            row = self.db.conn.execute(
                "SELECT hit_count FROM cache WHERE key = ?;", (key,)
            ).fetchone()
            self.db.conn.commit()
        return int(row["hit_count"]) if row is not None else 0

    async def delete_expired(self, now: datetime) -> int:
        with self.db.lock:
            cur = self.db.conn.execute(
                "DELETE FROM cache WHERE expires_at <= ?;", (_ts(now),)
            )
            self.db.conn.commit()
        return cur.rowcount

    async def entries(self) -> list[CacheEntry]:
        with self.db.lock:
            rows = self.db.conn.execute(
                """
                SELECT key, value, expires_at, source, hit_count, created_at
                FROM cache
                ORDER BY created_at DESC;
                """
            ).fetchall()
        return [_row_to_entry(r) for r in rows]
