from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.logging import get_logger
from app.settings import Settings, split_csv
from ingest.dates import parse_date
from normalize.records import NormalizedPost, NormalizedUpdate, PostMetrics


log = get_logger("normalize")

Rule = tuple[tuple[str, ...], str]
PriorityRule = tuple[tuple[str, ...], int]

# First match wins; order is part of the contract.
UPDATE_TYPE_RULES: list[Rule] = [
    (("evacuation",), "evacuation"),
    (("warning", "alert"), "alert"),
    (("advisory",), "advisory"),
    (("update", "status"), "update"),
    (("relief", "aid"), "relief"),
]

PRIORITY_RULES: list[PriorityRule] = [
    (("urgent", "emergency"), 5),
    (("warning", "evacuation"), 4),
    (("alert", "watch"), 3),
    (("advisory",), 2),
]

WEATHER_EVENT_RULES: list[Rule] = [
    (("warning",), "warning"),
    (("watch",), "watch"),
    (("advisory",), "advisory"),
    (("statement",), "statement"),
]

SEVERITY_PRIORITY: dict[str, int] = {
    "extreme": 5,
    "severe": 4,
    "moderate": 3,
    "minor": 2,
}

POST_CLASSIFICATION_RULES: list[Rule] = [
    (("help", "assistance", "need", "trapped", "stranded"), "help_request"),
    (("offering", "volunteer", "donate", "shelter", "supplies"), "offer_help"),
    (("update", "report", "status", "confirmed", "official"), "information"),
]

_WORD_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w]")


def first_match(text: object, rules: Iterable[tuple[tuple[str, ...], object]], default):
    lowered = _text(text).casefold()
    for needles, label in rules:
        if any(needle in lowered for needle in needles):
            return label
    return default


def _text(value: object) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def classify_update_type(title: str) -> str:
    return first_match(title, UPDATE_TYPE_RULES, "general")


def calculate_priority(title: str) -> int:
    return first_match(title, PRIORITY_RULES, 1)


def classify_weather_event(event: object) -> str:
    return first_match(event, WEATHER_EVENT_RULES, "alert")


def severity_priority(severity: object) -> int:
    return SEVERITY_PRIORITY.get(_text(severity).strip().casefold(), 1)


@dataclass(frozen=True)
class Classifier:
    """Keyword tables applied during normalization."""

    disaster_keywords: tuple[str, ...]
    social_keywords: tuple[str, ...]
    urgent_keywords: tuple[str, ...]

    @classmethod
    def from_settings(cls, settings: Settings) -> Classifier:
        return cls(
            disaster_keywords=tuple(k.casefold() for k in split_csv(settings.disaster_keywords)),
            social_keywords=tuple(k.casefold() for k in split_csv(settings.social_keywords)),
            urgent_keywords=tuple(k.casefold() for k in split_csv(settings.urgent_keywords)),
        )

    def is_urgent(self, content: str) -> bool:
        lowered = content.casefold()
        return any(keyword in lowered for keyword in self.urgent_keywords)

    def extract_keywords(self, content: str) -> tuple[str, ...]:
        vocabulary = set(self.social_keywords) | set(self.urgent_keywords)
        found: set[str] = set()
        for word in _WORD_RE.split(content.casefold()):
            clean = _NON_WORD_RE.sub("", word)
            if clean and clean in vocabulary:
                found.add(clean)
        return tuple(sorted(found))

    def classify_post(self, content: str) -> str:
        return first_match(content, POST_CLASSIFICATION_RULES, "general")

    def mentions_disaster(self, text: str) -> bool:
        lowered = text.casefold()
        return any(keyword in lowered for keyword in self.disaster_keywords)


def _opt_text(value: object) -> str | None:
    text = _text(value).strip()
    return text or None


def normalize_update(record: dict, *, source_id: str, source_name: str) -> NormalizedUpdate | None:
    title = str(record.get("title") or "").strip()
    if not title:
        log.warning(f"Dropping {source_id} record without title: url={record.get('url')!r}")
        return None

    return NormalizedUpdate(
        title=title,
        content=str(record.get("content") or "").strip(),
        url=record.get("url") or None,
        source=source_name,
        source_id=source_id,
        published_at=parse_date(record.get("date_text")),
        update_type=classify_update_type(title),
        priority_level=calculate_priority(title),
    )


def normalize_weather_alert(
    record: dict, *, source_id: str, source_name: str
) -> NormalizedUpdate | None:
    properties = record.get("properties")
    if not isinstance(properties, dict):
        log.warning(f"Dropping {source_id} alert without properties")
        return None

    title = str(properties.get("headline") or properties.get("event") or "").strip()
    if not title:
        log.warning(f"Dropping {source_id} alert without headline: id={record.get('id')!r}")
        return None

    description = properties.get("description")
    instruction = properties.get("instruction")
    content = str(description or instruction or "")

    published_at = parse_date(
        properties.get("onset") or properties.get("effective") or properties.get("sent")
    )
    url = record.get("id") or properties.get("@id") or None

    return NormalizedUpdate(
        title=title,
        content=content.strip(),
        url=str(url) if url else None,
        source=source_name,
        source_id=source_id,
        published_at=published_at,
        update_type=classify_weather_event(properties.get("event")),
        priority_level=severity_priority(properties.get("severity")),
        severity=_opt_text(properties.get("severity")),
        urgency=_opt_text(properties.get("urgency")),
        certainty=_opt_text(properties.get("certainty")),
    )


def normalize_post(
    record: dict,
    *,
    platform: str,
    classifier: Classifier,
    fetched_at: datetime,
) -> NormalizedPost | None:
    author = str(record.get("author") or "").strip()
    post_id = str(record.get("id") or "").strip()
    if not author:
        log.warning(f"Dropping {platform} post without author: id={post_id!r}")
        return None
    if not post_id:
        log.warning(f"Dropping {platform} post without id from {author!r}")
        return None

    content = str(record.get("content") or "").strip()
    created_at = parse_date(record.get("created_at")) or fetched_at

    return NormalizedPost(
        id=post_id,
        content=content,
        author=author,
        created_at=created_at,
        platform=platform,
        metrics=PostMetrics(
            likes=int(record.get("likes") or 0),
            shares=int(record.get("shares") or 0),
            replies=int(record.get("replies") or 0),
        ),
        verified=bool(record.get("verified")),
        is_urgent=classifier.is_urgent(content),
        keywords=classifier.extract_keywords(content),
        classification=classifier.classify_post(content),
        url=record.get("url") or None,
        author_id=record.get("author_id") or None,
    )
