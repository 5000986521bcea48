from __future__ import annotations

from collections.abc import Awaitable, Callable

from app.logging import get_logger
from cache.cache import CacheManager, cached
from geo.coords_extract import extract_coords_centroid, plausible_coordinates
from ingest.context import DisasterContext


log = get_logger("geo.geocode")

Geocoder = Callable[[str], Awaitable[tuple[float, float] | None]]


def cached_geocoder(
    geocoder: Geocoder,
    cache: CacheManager,
    *,
    ttl_seconds: int,
    provider: str = "default",
) -> Geocoder:
    @cached(
        cache,
        service="geocoding",
        operation=provider,
        ttl_seconds=ttl_seconds,
        key_input=lambda name: name.strip().casefold(),
        source=f"geocoding_{provider}",
    )
    async def lookup(name: str) -> list[float] | None:
        result = await geocoder(name)
        if result is None:
            return None
        return [float(result[0]), float(result[1])]

    async def geocode(name: str) -> tuple[float, float] | None:
        value = await lookup(name)
        if not value:
            return None
        return (float(value[0]), float(value[1]))

    return geocode


async def resolve_coordinates(
    context: DisasterContext,
    geocoder: Geocoder | None = None,
    *,
    sanity_check: bool = False,
) -> tuple[float, float] | None:
    """Explicit coordinates, then coordinates written in the text, then the geocoder."""
    candidates: list[tuple[str, tuple[float, float] | None]] = [
        ("explicit", context.coordinates),
        ("location_text", extract_coords_centroid(context.location_name)),
        ("description_text", extract_coords_centroid(context.description)),
    ]
    for origin, coords in candidates:
        if coords is None:
            continue
        if plausible_coordinates(coords[0], coords[1], sanity_check=sanity_check):
            return coords
        log.warning(f"Ignoring implausible {origin} coordinates {coords}")

    if geocoder is None or not context.location_name:
        return None

    try:
        coords = await geocoder(context.location_name)
    except Exception as e:  # noqa: BLE001
        log.warning(f"Geocoding failed for {context.location_name!r}: {e}")
        return None
    if coords is None:
        return None
    if not plausible_coordinates(coords[0], coords[1], sanity_check=sanity_check):
        log.warning(f"Ignoring implausible geocoded coordinates {coords}")
        return None
    return coords
