from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from app.logging import configure_logging, get_logger
from app.services import Services, build_services
from app.settings import Settings
from geo.coords_extract import valid_coordinates
from ingest.context import AggregateOptions, DisasterContext
from ingest.orchestrator import AggregationPipeline


log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    configure_logging(settings)
    client = httpx.AsyncClient(follow_redirects=True)
    services = build_services(settings, client)
    app.state.settings = settings
    app.state.services = services
    log.info(
        f"Serving official sources {services.official.registry.default_sources} "
        f"and social sources {services.social.registry.default_sources}"
    )
    try:
        yield
    finally:
        await client.aclose()
        services.close()


app = FastAPI(lifespan=lifespan)


class AggregateRequest(BaseModel):
    tags: list[str] = Field(default_factory=list)
    location_name: str = ""
    description: str = ""
    disaster_id: str | None = None
    coordinates: tuple[float, float] | None = None
    sources: list[str] | None = None
    max_results: int | None = Field(default=None, ge=1, le=200)
    time_window_hours: int | None = Field(default=None, ge=1, le=24 * 30)
    refresh: bool = False

    @field_validator("coordinates")
    @classmethod
    def _check_coordinates(cls, value: tuple[float, float] | None):
        if value is not None and not valid_coordinates(value[0], value[1]):
            raise ValueError("coordinates must be (lat, lon) within valid ranges")
        return value

    def context(self) -> DisasterContext:
        return DisasterContext(
            tags=tuple(self.tags),
            location_name=self.location_name,
            description=self.description,
            disaster_id=self.disaster_id,
            coordinates=self.coordinates,
        )

    def options(self) -> AggregateOptions:
        return AggregateOptions(
            sources=self.sources,
            max_results=self.max_results,
            time_window_hours=self.time_window_hours,
            refresh=self.refresh,
        )


def _services(request: Request) -> Services:
    return request.app.state.services


async def _aggregate(pipeline: AggregationPipeline, body: AggregateRequest) -> JSONResponse:
    result = await pipeline.aggregate(body.context(), body.options())
    payload = result.to_dict()
    payload["count"] = len(result.records)
    return JSONResponse(payload)


@app.post("/api/official-updates")
async def api_official_updates(request: Request, body: AggregateRequest) -> JSONResponse:
    return await _aggregate(_services(request).official, body)


@app.post("/api/social-media")
async def api_social_media(request: Request, body: AggregateRequest) -> JSONResponse:
    return await _aggregate(_services(request).social, body)


@app.get("/api/sources")
def api_sources(request: Request) -> JSONResponse:
    services = _services(request)
    return JSONResponse(
        {
            services.official.service: services.official.service_info(),
            services.social.service: services.social.service_info(),
        }
    )


@app.get("/api/cache/stats")
async def api_cache_stats(request: Request) -> JSONResponse:
    stats = await _services(request).cache.stats()
    return JSONResponse(
        {
            "total_entries": stats.total_entries,
            "total_hits": stats.total_hits,
            "expired_entries": stats.expired_entries,
            "by_source": stats.by_source,
        }
    )


@app.delete("/api/cache/{source}")
async def api_clear_cache(request: Request, source: str) -> JSONResponse:
    deleted = await _services(request).cache.invalidate_source(source)
    return JSONResponse({"source": source, "deleted": deleted})


@app.get("/health")
async def health(request: Request) -> JSONResponse:
    services = _services(request)
    checks = {
        services.official.service: await services.official.health_check(),
        services.social.service: await services.social.health_check(),
    }
    healthy = all(checks.values())
    return JSONResponse(
        {"status": "ok" if healthy else "degraded", "checks": checks},
        status_code=200 if healthy else 503,
    )
