from __future__ import annotations

import feedparser

from ingest.dates import parse_date, to_iso


def parse_rss(data: bytes) -> list[dict]:
    parsed = feedparser.parse(data)
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"unreadable feed: {parsed.get('bozo_exception')!r}")

    records: list[dict] = []
    for entry in parsed.entries:
        published = parse_date(entry.get("published") or entry.get("updated"))

        content = None
        if "content" in entry and entry["content"]:
            content = entry["content"][0].get("value")

        records.append(
            {
                "id": entry.get("id") or entry.get("guid") or entry.get("link"),
                "title": entry.get("title", ""),
                "url": entry.get("link"),
                "date_text": to_iso(published),
                "content": content or entry.get("summary", ""),
            }
        )
    return records
