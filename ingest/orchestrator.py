from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

import httpx

from app.logging import get_logger
from app.settings import Settings
from cache.cache import CacheManager, generate_key
from geo.geocode import Geocoder, cached_geocoder, resolve_coordinates
from health.health import SourceHealthBoard
from ingest.adapters import SourceAdapter, SourceRegistry
from ingest.context import AggregateOptions, AggregationResult, DisasterContext
from ingest.dates import utc_now
from ingest.errors import ConfigurationError, SourceError, SourceTimeout
from ingest.mock import generate_posts, generate_updates
from normalize.normalize import Classifier
from normalize.records import NormalizedPost, NormalizedRecord, NormalizedUpdate
from rank.ranking import (
    dedupe,
    filter_relevant_updates,
    filter_time_window,
    rank,
    score_records,
)


log = get_logger("ingest.orchestrator")


@dataclass(frozen=True)
class SourceOutcome:
    source_id: str
    records: list[dict] = field(default_factory=list)
    error: str | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_adapter(
    adapter: SourceAdapter,
    client: httpx.AsyncClient,
    context: DisasterContext,
    time_window_hours: int,
    *,
    limit: int,
    health: SourceHealthBoard | None = None,
) -> SourceOutcome:
    """Fetch one source; every failure becomes an empty outcome."""
    started = time.perf_counter()
    error: SourceError
    try:
        records = await asyncio.wait_for(
            adapter.fetch(client, context, time_window_hours, limit=limit),
            timeout=adapter.deadline_seconds,
        )
    except asyncio.TimeoutError:
        error = SourceTimeout(adapter.source_id, "deadline_exceeded")
    except SourceError as e:
        error = e
    except Exception as e:  # noqa: BLE001
        log.opt(exception=e).error(f"Unexpected failure in source {adapter.source_id}")
        error = SourceError(adapter.source_id, f"unexpected:{e.__class__.__name__}")
    else:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if health is not None:
            health.record_fetch_success(
                adapter.source_id, record_count=len(records), fetch_ms=elapsed_ms
            )
        log.debug(f"Fetched {len(records)} records from {adapter.source_id} in {elapsed_ms}ms")
        return SourceOutcome(adapter.source_id, list(records), None, elapsed_ms)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    if health is not None:
        failures = health.record_fetch_error(
            adapter.source_id, error=error.reason, fetch_ms=elapsed_ms
        )
        log.warning(
            f"Failed to fetch from {adapter.source_id}: {error.reason} "
            f"(consecutive failures: {failures})"
        )
    else:
        log.warning(f"Failed to fetch from {adapter.source_id}: {error.reason}")
    return SourceOutcome(adapter.source_id, [], error.reason, elapsed_ms)


async def gather_sources(
    adapters: Sequence[SourceAdapter],
    client: httpx.AsyncClient,
    context: DisasterContext,
    time_window_hours: int,
    *,
    limit: int,
    health: SourceHealthBoard | None = None,
) -> list[SourceOutcome]:
    return list(
        await asyncio.gather(
            *(
                run_adapter(
                    adapter, client, context, time_window_hours, limit=limit, health=health
                )
                for adapter in adapters
            )
        )
    )


class AggregationPipeline(ABC):
    service: ClassVar[str]
    operation: ClassVar[str]
    record_type: ClassVar[type]

    def __init__(
        self,
        *,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: CacheManager,
        registry: SourceRegistry,
        classifier: Classifier | None = None,
        health: SourceHealthBoard | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache
        self.registry = registry
        self.classifier = classifier or Classifier.from_settings(settings)
        self.health = health or SourceHealthBoard(clock=clock)
        self.clock = clock
        self.weights = settings.score_weights()

    @property
    @abstractmethod
    def ttl_seconds(self) -> int: ...

    @property
    @abstractmethod
    def default_max_results(self) -> int: ...

    @property
    @abstractmethod
    def default_time_window_hours(self) -> int: ...

    def select_adapters(self, sources: Sequence[str] | None) -> list[SourceAdapter]:
        tokens = list(sources) if sources is not None else self.registry.default_sources
        adapters: list[SourceAdapter] = []
        seen: set[str] = set()
        for token in tokens:
            try:
                adapter = self.registry.resolve(token)
            except ConfigurationError as e:
                log.warning(f"Excluding source from {self.service}: {e}")
                continue
            if adapter.source_id not in seen:
                seen.add(adapter.source_id)
                adapters.append(adapter)
        return adapters

    async def prepare_context(self, context: DisasterContext) -> DisasterContext:
        return context

    def filter_relevant(
        self, records: list[NormalizedRecord], context: DisasterContext
    ) -> list[NormalizedRecord]:
        return records

    @abstractmethod
    def fallback(
        self, context: DisasterContext, max_results: int, now: datetime
    ) -> list[NormalizedRecord]: ...

    async def aggregate(
        self, context: DisasterContext, options: AggregateOptions | None = None
    ) -> AggregationResult:
        options = options or AggregateOptions()
        adapters = self.select_adapters(options.sources)
        max_results = options.max_results or self.default_max_results
        window = options.time_window_hours or self.default_time_window_hours

        key = generate_key(
            self.service,
            self.operation,
            context.cache_identity(
                [a.source_id for a in adapters], max_results=max_results, window=window
            ),
        )
        if options.refresh:
            await self.cache.delete(key)

        async def compute() -> list[dict]:
            records = await self._collect(context, adapters, max_results, window)
            return [r.to_dict() for r in records]

        payload, from_cache = await self.cache.fetch_or_compute(
            key, compute, self.ttl_seconds, source=self.service
        )
        return AggregationResult(
            records=[self.record_type.from_dict(d) for d in payload],
            from_cache=from_cache,
        )

    async def _collect(
        self,
        context: DisasterContext,
        adapters: list[SourceAdapter],
        max_results: int,
        window: int,
    ) -> list[NormalizedRecord]:
        started = time.perf_counter()
        context = await self.prepare_context(context)
        outcomes = await gather_sources(
            adapters, self.client, context, window, limit=max_results, health=self.health
        )

        now = self.clock()
        normalized: list[NormalizedRecord] = []
        for adapter, outcome in zip(adapters, outcomes):
            for raw in outcome.records:
                try:
                    record = adapter.normalize(raw, self.classifier, fetched_at=now)
                except Exception as e:  # noqa: BLE001
                    log.warning(
                        f"Dropping malformed {adapter.source_id} record: "
                        f"parse_error:{e.__class__.__name__}: {e}"
                    )
                    continue
                if record is not None:
                    normalized.append(record)

        if not normalized:
            log.warning(
                f"{self.service}: no records from {[a.source_id for a in adapters]}, "
                "using mock fallback"
            )
            records = self.fallback(context, max_results, now)
            outcome_label = "fallback"
        else:
            records = filter_time_window(normalized, now=now, hours=window)
            records = self.filter_relevant(records, context)
            outcome_label = "success"

        records = rank(dedupe(score_records(records, context, now=now, weights=self.weights)))
        records = records[:max_results]

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            f"{self.service} {self.operation} {outcome_label} in {elapsed_ms}ms: "
            f"disaster={context.disaster_id} sources={len(adapters)} "
            f"failed={sum(1 for o in outcomes if not o.ok)} "
            f"total={len(normalized)} returned={len(records)}"
        )
        return records

    async def health_check(self) -> bool:
        context = DisasterContext(
            tags=("flood",), location_name="Test City", disaster_id="health-check"
        )
        try:
            result = await self.aggregate(
                context, AggregateOptions(sources=["mock"], max_results=3)
            )
        except Exception as e:  # noqa: BLE001
            log.error(f"{self.service} health check failed: {e}")
            return False
        return len(result.records) > 0

    def service_info(self) -> dict:
        source_ids = {d["id"] for d in self.registry.describe()}
        return {
            "service": self.service,
            "enabled_sources": self.registry.default_sources,
            "sources": self.registry.describe(),
            "keywords": {
                "disaster": len(self.classifier.disaster_keywords),
                "social": len(self.classifier.social_keywords),
                "urgent": len(self.classifier.urgent_keywords),
            },
            "cache_ttl_seconds": self.ttl_seconds,
            "health": [h for h in self.health.snapshot() if h["source_id"] in source_ids],
        }


class OfficialUpdatesPipeline(AggregationPipeline):
    service = "official_updates"
    operation = "fetch_updates"
    record_type = NormalizedUpdate

    def __init__(self, *, geocoder: Geocoder | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.geocoder = (
            cached_geocoder(
                geocoder, self.cache, ttl_seconds=self.settings.geocoding_ttl_seconds
            )
            if geocoder is not None
            else None
        )

    @property
    def ttl_seconds(self) -> int:
        return self.settings.official_updates_ttl_seconds

    @property
    def default_max_results(self) -> int:
        return self.settings.official_max_results

    @property
    def default_time_window_hours(self) -> int:
        return self.settings.official_time_window_hours

    async def prepare_context(self, context: DisasterContext) -> DisasterContext:
        coords = await resolve_coordinates(
            context, self.geocoder, sanity_check=self.settings.coordinate_sanity_check
        )
        return context.with_coordinates(coords)

    def filter_relevant(self, records, context):
        return filter_relevant_updates(records, context, self.classifier.mentions_disaster)

    def fallback(self, context, max_results, now):
        count = min(self.settings.mock_update_count, max_results)
        return generate_updates(context, count, now=now)


class SocialMediaPipeline(AggregationPipeline):
    service = "social_media"
    operation = "fetch_reports"
    record_type = NormalizedPost

    @property
    def ttl_seconds(self) -> int:
        return self.settings.social_media_ttl_seconds

    @property
    def default_max_results(self) -> int:
        return self.settings.social_max_results

    @property
    def default_time_window_hours(self) -> int:
        return self.settings.social_time_window_hours

    def fallback(self, context, max_results, now):
        count = min(self.settings.mock_post_count, max_results)
        return generate_posts(context, count, now=now, classifier=self.classifier)
