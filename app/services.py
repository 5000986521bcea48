from __future__ import annotations

from dataclasses import dataclass

import httpx

from app.settings import Settings
from cache.cache import CacheManager
from cache.stores import MemoryCacheStore, SqliteCacheStore
from geo.geocode import Geocoder
from health.health import SourceHealthBoard
from ingest.adapters import official_registry, social_registry
from ingest.orchestrator import OfficialUpdatesPipeline, SocialMediaPipeline
from normalize.normalize import Classifier
from store.db import Database, close_database, open_database


@dataclass
class Services:
    settings: Settings
    cache: CacheManager
    health: SourceHealthBoard
    official: OfficialUpdatesPipeline
    social: SocialMediaPipeline
    db: Database | None = None

    def close(self) -> None:
        if self.db is not None:
            close_database(self.db)
            self.db = None


def build_services(
    settings: Settings,
    client: httpx.AsyncClient,
    *,
    geocoder: Geocoder | None = None,
) -> Services:
    db = open_database(settings.cache_db_path) if settings.cache_db_path else None
    cache = CacheManager(SqliteCacheStore(db) if db is not None else MemoryCacheStore())
    health = SourceHealthBoard()
    classifier = Classifier.from_settings(settings)

    shared = dict(
        settings=settings,
        client=client,
        cache=cache,
        classifier=classifier,
        health=health,
    )
    return Services(
        settings=settings,
        cache=cache,
        health=health,
        official=OfficialUpdatesPipeline(
            registry=official_registry(settings), geocoder=geocoder, **shared
        ),
        social=SocialMediaPipeline(
            registry=social_registry(settings, classifier), **shared
        ),
        db=db,
    )
