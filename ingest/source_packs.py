from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from ingest.errors import ConfigurationError
from ingest.parsers.html import ScrapeTemplate


SOURCE_TYPES = {"html", "rss"}


@dataclass(frozen=True)
class SourcePackEntry:
    pack_id: str
    source_id: str
    name: str
    source_type: str
    url: str
    base_url: str
    template: ScrapeTemplate | None
    enabled: bool


def _template(path: Path, source_id: str, raw: object) -> ScrapeTemplate:
    if not isinstance(raw, dict) or not raw.get("container") or not raw.get("title"):
        raise ConfigurationError(
            f"html source {source_id} in {path} needs selectors.container and selectors.title"
        )
    return ScrapeTemplate(
        container=str(raw["container"]),
        title=str(raw["title"]),
        link=raw.get("link"),
        date=raw.get("date"),
        content=raw.get("content"),
        date_pattern=raw.get("date_pattern"),
    )


def load_source_pack_entries(packs_dir: Path) -> dict[str, list[SourcePackEntry]]:
    packs: dict[str, list[SourcePackEntry]] = {}
    if not packs_dir.exists():
        return packs

    for path in sorted(packs_dir.glob("*.yaml")):
        pack_id = path.stem
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            packs[pack_id] = []
            continue
        if not isinstance(raw, list):
            raise ConfigurationError(f"invalid source pack: {path}")

        entries: list[SourcePackEntry] = []
        for entry in raw:
            if not isinstance(entry, dict) or "id" not in entry or "url" not in entry:
                raise ConfigurationError(f"invalid source entry in: {path}")
            source_id = str(entry["id"]).strip().casefold()
            source_type = str(entry.get("type") or "rss").casefold()
            if source_type not in SOURCE_TYPES:
                raise ConfigurationError(
                    f"source {source_id} in {path} has unsupported type {source_type!r}"
                )
            url = str(entry["url"])
            entries.append(
                SourcePackEntry(
                    pack_id=pack_id,
                    source_id=source_id,
                    name=str(entry.get("name") or source_id),
                    source_type=source_type,
                    url=url,
                    base_url=str(entry.get("base_url") or url),
                    template=_template(path, source_id, entry.get("selectors"))
                    if source_type == "html"
                    else None,
                    enabled=bool(entry.get("enabled", True)),
                )
            )

        packs[pack_id] = entries

    return packs
