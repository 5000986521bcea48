from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import ClassVar

import httpx

from app.logging import get_logger
from app.settings import Settings
from ingest.context import DisasterContext
from ingest.dates import utc_now
from ingest.errors import ConfigurationError, ParseFailure, SourceUnavailable
from ingest.fetch import fetch, post_json
from ingest.mock import generate_posts, generate_updates
from ingest.parsers.geojson import parse_alert_features
from ingest.parsers.html import ScrapeTemplate, extract_entries
from ingest.parsers.rss import parse_rss
from ingest.parsers.social import (
    parse_bluesky_search,
    parse_bluesky_session,
    parse_twitter_search,
)
from ingest.source_packs import load_source_pack_entries
from normalize.normalize import (
    Classifier,
    normalize_post,
    normalize_update,
    normalize_weather_alert,
)
from normalize.records import MOCK_SOURCE, NormalizedPost, NormalizedRecord, NormalizedUpdate


log = get_logger("ingest.adapters")

FEMA_TEMPLATE = ScrapeTemplate(
    container=".views-row",
    title=".field-title a",
    date=".field-date",
)
REDCROSS_TEMPLATE = ScrapeTemplate(
    container=".news-listing-item, .content-item, .article-teaser",
    title="h2 a, h3 a, .title a",
    date=".date, .publish-date, .meta-date",
    content=".summary, .excerpt, .description",
)
CDC_TEMPLATE = ScrapeTemplate(
    container="li, .content-item, .news-item",
    title="a",
    date=".date, time",
    date_pattern=r"\d{1,2}/\d{1,2}/\d{4}",
)
NWS_NEWS_TEMPLATE = ScrapeTemplate(
    container=".news-item",
    title=".news-title a",
    date=".news-date",
)

NWS_ALERTS_URL = "https://api.weather.gov/alerts/active"

SEARCH_FILLER_TERMS = ("emergency", "disaster", "help")
MAX_QUERY_TERMS = 10

# Per-adapter hard deadline is the network timeout plus this slack; adapters
# that make two requests split one budget between them.
DEADLINE_SLACK_SECONDS = 5.0
MIN_READ_TIMEOUT_SECONDS = 1.0


def build_search_query(context: DisasterContext) -> str:
    terms = [*context.tags, *context.location_parts, *SEARCH_FILLER_TERMS]
    quoted = [f'"{t}"' if " " in t else t for t in terms[:MAX_QUERY_TERMS]]
    return " OR ".join(quoted)


def _remaining(started: float, budget: float) -> float:
    return max(MIN_READ_TIMEOUT_SECONDS, budget - (time.monotonic() - started))


def _parse(source_id: str, parse: Callable[[bytes], list[dict]], data: bytes) -> list[dict]:
    try:
        return parse(data)
    except ValueError as e:
        raise ParseFailure(source_id, f"parse_error:{e}") from e


@dataclass(frozen=True)
class SourceAdapter(ABC):
    source_id: str
    name: str
    user_agent: str
    timeout_seconds: float

    kind: ClassVar[str] = "official"

    @property
    def endpoint(self) -> str | None:
        return None

    @property
    def deadline_seconds(self) -> float:
        return self.timeout_seconds + DEADLINE_SLACK_SECONDS

    @abstractmethod
    async def fetch(
        self,
        client: httpx.AsyncClient,
        context: DisasterContext,
        time_window_hours: int,
        *,
        limit: int,
    ) -> list[dict]: ...

    def normalize(self, record: dict, classifier: Classifier, *, fetched_at) -> NormalizedRecord | None:
        return normalize_update(record, source_id=self.source_id, source_name=self.name)

    def describe(self) -> dict:
        return {
            "id": self.source_id,
            "name": self.name,
            "kind": self.kind,
            "url": self.endpoint,
        }


@dataclass(frozen=True)
class ScrapeAdapter(SourceAdapter):
    """Agency listing page read through a ``ScrapeTemplate``."""

    url: str
    base_url: str
    template: ScrapeTemplate

    @property
    def endpoint(self) -> str | None:
        return self.url

    async def fetch(self, client, context, time_window_hours, *, limit):
        response = await fetch(
            client,
            source_id=self.source_id,
            url=self.url,
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds,
        )
        return _parse(
            self.source_id,
            lambda data: extract_entries(data, self.template, self.base_url),
            response.content,
        )


@dataclass(frozen=True)
class FeedAdapter(SourceAdapter):
    url: str

    @property
    def endpoint(self) -> str | None:
        return self.url

    async def fetch(self, client, context, time_window_hours, *, limit):
        response = await fetch(
            client,
            source_id=self.source_id,
            url=self.url,
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds,
        )
        return _parse(self.source_id, parse_rss, response.content)


@dataclass(frozen=True)
class NwsAlertsAdapter(SourceAdapter):
    """Active alerts API, scoped to a point when the context has coordinates.

    Falls back to the NWS news page when the API is down or returns junk.
    """

    fallback: ScrapeAdapter
    alerts_url: str = NWS_ALERTS_URL

    @property
    def endpoint(self) -> str | None:
        return self.alerts_url

    async def fetch(self, client, context, time_window_hours, *, limit):
        started = time.monotonic()
        params: dict[str, str | int] = {}
        if context.coordinates is not None:
            lat, lon = context.coordinates
            params["point"] = f"{lat:.4f},{lon:.4f}"
        try:
            response = await fetch(
                client,
                source_id=self.source_id,
                url=self.alerts_url,
                user_agent=self.user_agent,
                timeout_seconds=self.timeout_seconds / 2,
                params=params or None,
                extra_headers={"Accept": "application/geo+json"},
            )
            return _parse(self.source_id, parse_alert_features, response.content)
        except (SourceUnavailable, ParseFailure) as e:
            log.warning(f"NWS alerts API failed ({e.reason}), falling back to news page")
        fallback = replace(
            self.fallback,
            timeout_seconds=min(
                self.fallback.timeout_seconds, _remaining(started, self.timeout_seconds)
            ),
        )
        return await fallback.fetch(client, context, time_window_hours, limit=limit)

    def normalize(self, record, classifier, *, fetched_at):
        if "properties" in record:
            return normalize_weather_alert(
                record, source_id=self.source_id, source_name=self.name
            )
        return normalize_update(record, source_id=self.source_id, source_name=self.name)


@dataclass(frozen=True)
class TwitterAdapter(SourceAdapter):
    base_url: str
    bearer_token: str
    rate_limit_delay: float = 1.0

    kind: ClassVar[str] = "social"

    @property
    def endpoint(self) -> str | None:
        return f"{self.base_url}/tweets/search/recent"

    @property
    def deadline_seconds(self) -> float:
        return self.timeout_seconds + DEADLINE_SLACK_SECONDS + self.rate_limit_delay

    async def fetch(self, client, context, time_window_hours, *, limit):
        since = utc_now() - timedelta(hours=time_window_hours)
        if self.rate_limit_delay > 0:
            await asyncio.sleep(self.rate_limit_delay)
        response = await fetch(
            client,
            source_id=self.source_id,
            url=f"{self.base_url}/tweets/search/recent",
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds,
            params={
                "query": f"({build_search_query(context)}) -is:retweet lang:en",
                # The search endpoint rejects anything outside 10..100.
                "max_results": max(10, min(limit, 100)),
                "tweet.fields": "created_at,author_id,public_metrics,geo",
                "user.fields": "username,verified,public_metrics",
                "expansions": "author_id",
                "start_time": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            extra_headers={
                "Authorization": f"Bearer {self.bearer_token}",
                "Accept": "application/json",
            },
        )
        return _parse(self.source_id, parse_twitter_search, response.content)

    def normalize(self, record, classifier, *, fetched_at):
        return normalize_post(
            record, platform="twitter", classifier=classifier, fetched_at=fetched_at
        )


@dataclass(frozen=True)
class BlueskyAdapter(SourceAdapter):
    base_url: str
    handle: str
    app_password: str
    rate_limit_delay: float = 0.5

    kind: ClassVar[str] = "social"

    @property
    def endpoint(self) -> str | None:
        return f"{self.base_url}/app.bsky.feed.searchPosts"

    @property
    def deadline_seconds(self) -> float:
        return self.timeout_seconds + DEADLINE_SLACK_SECONDS + self.rate_limit_delay

    async def _session_token(self, client: httpx.AsyncClient) -> str:
        response = await post_json(
            client,
            source_id=self.source_id,
            url=f"{self.base_url}/com.atproto.server.createSession",
            user_agent=self.user_agent,
            timeout_seconds=self.timeout_seconds / 2,
            payload={"identifier": self.handle, "password": self.app_password},
        )
        try:
            return parse_bluesky_session(response.content)
        except ValueError as e:
            raise ParseFailure(self.source_id, f"auth_parse_error:{e}") from e

    async def fetch(self, client, context, time_window_hours, *, limit):
        started = time.monotonic()
        token = await self._session_token(client)
        since = utc_now() - timedelta(hours=time_window_hours)
        if self.rate_limit_delay > 0:
            await asyncio.sleep(self.rate_limit_delay)
        response = await fetch(
            client,
            source_id=self.source_id,
            url=f"{self.base_url}/app.bsky.feed.searchPosts",
            user_agent=self.user_agent,
            timeout_seconds=_remaining(started, self.timeout_seconds + self.rate_limit_delay),
            params={
                "q": build_search_query(context),
                "limit": max(1, min(limit, 25)),
                "since": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            extra_headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        )
        return _parse(self.source_id, parse_bluesky_search, response.content)

    def normalize(self, record, classifier, *, fetched_at):
        return normalize_post(
            record, platform="bluesky", classifier=classifier, fetched_at=fetched_at
        )


@dataclass(frozen=True)
class MockUpdatesAdapter(SourceAdapter):
    count: int = 3

    async def fetch(self, client, context, time_window_hours, *, limit):
        updates = generate_updates(context, min(self.count, limit), now=utc_now())
        return [u.to_dict() for u in updates]

    def normalize(self, record, classifier, *, fetched_at):
        return NormalizedUpdate.from_dict(record)


@dataclass(frozen=True)
class MockPostsAdapter(SourceAdapter):
    classifier: Classifier
    count: int = 10

    kind: ClassVar[str] = "social"

    async def fetch(self, client, context, time_window_hours, *, limit):
        posts = generate_posts(
            context, min(self.count, limit), now=utc_now(), classifier=self.classifier
        )
        return [p.to_dict() for p in posts]

    def normalize(self, record, classifier, *, fetched_at):
        return NormalizedPost.from_dict(record)


class SourceRegistry:
    """Selection tokens for one pipeline, in registration order."""

    def __init__(
        self, adapters: list[SourceAdapter], *, enabled: set[str], mock: SourceAdapter
    ) -> None:
        self._adapters = {a.source_id: a for a in adapters}
        self.enabled = {s.casefold() for s in enabled}
        self.mock = mock

    def resolve(self, token: str) -> SourceAdapter:
        source_id = token.strip().casefold()
        if source_id == MOCK_SOURCE:
            return self.mock
        adapter = self._adapters.get(source_id)
        if adapter is None:
            raise ConfigurationError(f"unknown source: {source_id!r}")
        if source_id not in self.enabled:
            raise ConfigurationError(f"source is disabled or not configured: {source_id!r}")
        return adapter

    @property
    def default_sources(self) -> list[str]:
        return [source_id for source_id in self._adapters if source_id in self.enabled]

    def describe(self) -> list[dict]:
        described = []
        for adapter in self._adapters.values():
            info = adapter.describe()
            info["enabled"] = adapter.source_id in self.enabled
            described.append(info)
        return described


def official_registry(settings: Settings) -> SourceRegistry:
    ua = settings.user_agent
    scrape_timeout = settings.scrape_timeout_seconds
    nws_news = ScrapeAdapter(
        source_id="nws",
        name="National Weather Service",
        user_agent=ua,
        timeout_seconds=scrape_timeout,
        url="https://www.weather.gov/news/",
        base_url="https://www.weather.gov",
        template=NWS_NEWS_TEMPLATE,
    )
    adapters: list[SourceAdapter] = [
        ScrapeAdapter(
            source_id="fema",
            name="FEMA",
            user_agent=ua,
            timeout_seconds=scrape_timeout,
            url="https://www.fema.gov/about/news-multimedia/news-stories",
            base_url="https://www.fema.gov",
            template=FEMA_TEMPLATE,
        ),
        ScrapeAdapter(
            source_id="redcross",
            name="American Red Cross",
            user_agent=ua,
            timeout_seconds=scrape_timeout,
            url="https://www.redcross.org/about-us/news-and-events/news",
            base_url="https://www.redcross.org",
            template=REDCROSS_TEMPLATE,
        ),
        ScrapeAdapter(
            source_id="cdc",
            name="CDC Emergency Preparedness",
            user_agent=ua,
            timeout_seconds=scrape_timeout,
            url="https://www.cdc.gov/cpr/whatsnew/whatsnew.htm",
            base_url="https://www.cdc.gov",
            template=CDC_TEMPLATE,
        ),
        NwsAlertsAdapter(
            source_id="nws",
            name="National Weather Service",
            user_agent=ua,
            timeout_seconds=settings.api_timeout_seconds,
            fallback=nws_news,
        ),
    ]
    enabled = set(settings.enabled_official_sources)

    for pack in load_source_pack_entries(settings.source_packs_dir).values():
        for entry in pack:
            if any(a.source_id == entry.source_id for a in adapters):
                raise ConfigurationError(f"duplicate source id: {entry.source_id!r}")
            if entry.source_type == "html" and entry.template is not None:
                adapters.append(
                    ScrapeAdapter(
                        source_id=entry.source_id,
                        name=entry.name,
                        user_agent=ua,
                        timeout_seconds=scrape_timeout,
                        url=entry.url,
                        base_url=entry.base_url,
                        template=entry.template,
                    )
                )
            else:
                adapters.append(
                    FeedAdapter(
                        source_id=entry.source_id,
                        name=entry.name,
                        user_agent=ua,
                        timeout_seconds=scrape_timeout,
                        url=entry.url,
                    )
                )
            if entry.enabled:
                enabled.add(entry.source_id)

    mock = MockUpdatesAdapter(
        source_id=MOCK_SOURCE,
        name=MOCK_SOURCE,
        user_agent=ua,
        timeout_seconds=1.0,
        count=settings.mock_update_count,
    )
    return SourceRegistry(adapters, enabled=enabled, mock=mock)


def social_registry(settings: Settings, classifier: Classifier) -> SourceRegistry:
    ua = settings.user_agent
    adapters: list[SourceAdapter] = [
        TwitterAdapter(
            source_id="twitter",
            name="Twitter",
            user_agent=ua,
            timeout_seconds=settings.api_timeout_seconds,
            base_url=settings.twitter_base_url.rstrip("/"),
            bearer_token=(settings.twitter_bearer_token or "").strip(),
            rate_limit_delay=settings.twitter_rate_limit_delay,
        ),
        BlueskyAdapter(
            source_id="bluesky",
            name="Bluesky",
            user_agent=ua,
            timeout_seconds=settings.api_timeout_seconds,
            base_url=settings.bluesky_base_url.rstrip("/"),
            handle=settings.bluesky_handle or "",
            app_password=settings.bluesky_app_password or "",
            rate_limit_delay=settings.bluesky_rate_limit_delay,
        ),
    ]
    mock = MockPostsAdapter(
        source_id=MOCK_SOURCE,
        name=MOCK_SOURCE,
        user_agent=ua,
        timeout_seconds=1.0,
        classifier=classifier,
        count=settings.mock_post_count,
    )
    return SourceRegistry(adapters, enabled=set(settings.enabled_social_sources), mock=mock)
