from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

from ingest.dates import to_iso, utc_now


@dataclass
class SourceHealth:
    source_id: str
    last_fetch_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_fetch_ms: int | None = None
    last_record_count: int = 0
    consecutive_failures: int = 0
    success_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("last_fetch_at", "last_success_at", "last_error_at"):
            data[key] = to_iso(data[key])
        return data


class SourceHealthBoard:
    """Per-source fetch outcomes for the lifetime of the process."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock
        self._lock = threading.Lock()
        self._sources: dict[str, SourceHealth] = {}

    def _entry(self, source_id: str) -> SourceHealth:
        entry = self._sources.get(source_id)
        if entry is None:
            entry = SourceHealth(source_id=source_id)
            self._sources[source_id] = entry
        return entry

    def record_fetch_success(
        self, source_id: str, *, record_count: int, fetch_ms: int
    ) -> None:
        now = self.clock()
        with self._lock:
            entry = self._entry(source_id)
            entry.last_fetch_at = now
            entry.last_success_at = now
            entry.last_fetch_ms = fetch_ms
            entry.last_record_count = record_count
            entry.consecutive_failures = 0
            entry.last_error = None
            entry.last_error_at = None
            entry.success_count += 1

    def record_fetch_error(
        self, source_id: str, *, error: str, fetch_ms: int | None = None
    ) -> int:
        now = self.clock()
        with self._lock:
            entry = self._entry(source_id)
            entry.last_fetch_at = now
            entry.last_error_at = now
            entry.last_error = error
            if fetch_ms is not None:
                entry.last_fetch_ms = fetch_ms
            entry.last_record_count = 0
            entry.consecutive_failures += 1
            entry.error_count += 1
            return entry.consecutive_failures

    def get(self, source_id: str) -> SourceHealth | None:
        with self._lock:
            entry = self._sources.get(source_id)
            return SourceHealth(**asdict(entry)) if entry is not None else None

    def snapshot(self) -> list[dict]:
        with self._lock:
            return [
                self._sources[source_id].to_dict()
                for source_id in sorted(self._sources)
            ]
