from __future__ import annotations

import json
from dataclasses import dataclass, field

from normalize.records import NormalizedRecord


@dataclass(frozen=True)
class DisasterContext:
    tags: tuple[str, ...] = ()
    location_name: str = ""
    description: str = ""
    disaster_id: str | None = None
    coordinates: tuple[float, float] | None = None

    def __post_init__(self) -> None:
        seen: set[str] = set()
        tags: list[str] = []
        for tag in self.tags:
            tag = str(tag).strip()
            if tag and tag.casefold() not in seen:
                seen.add(tag.casefold())
                tags.append(tag)
        object.__setattr__(self, "tags", tuple(tags))
        object.__setattr__(self, "location_name", (self.location_name or "").strip())

    @property
    def primary_tag(self) -> str | None:
        return self.tags[0] if self.tags else None

    @property
    def location_parts(self) -> list[str]:
        return [p.strip() for p in self.location_name.split(",") if p.strip()]

    def with_coordinates(self, coordinates: tuple[float, float] | None) -> DisasterContext:
        return DisasterContext(
            tags=self.tags,
            location_name=self.location_name,
            description=self.description,
            disaster_id=self.disaster_id,
            coordinates=coordinates,
        )

    def cache_identity(self, sources: list[str], **params: object) -> str:
        return json.dumps(
            {
                "id": self.disaster_id,
                "tags": [t.casefold() for t in self.tags],
                "location": self.location_name.casefold(),
                "description": self.description,
                "coordinates": list(self.coordinates) if self.coordinates else None,
                "sources": sorted(sources),
                "params": params,
            },
            sort_keys=True,
            separators=(",", ":"),
        )


@dataclass(frozen=True)
class AggregateOptions:
    sources: list[str] | None = None
    max_results: int | None = None
    time_window_hours: int | None = None
    refresh: bool = False


@dataclass(frozen=True)
class AggregationResult:
    records: list[NormalizedRecord] = field(default_factory=list)
    from_cache: bool = False

    @property
    def synthetic(self) -> bool:
        return bool(self.records) and all(r.synthetic for r in self.records)

    def to_dict(self) -> dict:
        return {
            "records": [r.to_dict() for r in self.records],
            "from_cache": self.from_cache,
            "synthetic": self.synthetic,
        }
