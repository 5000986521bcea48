from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ingest.context import DisasterContext
from normalize.records import NormalizedPost, NormalizedRecord, NormalizedUpdate


R = TypeVar("R", NormalizedUpdate, NormalizedPost)


_TRACKING_PARAM_NAMES = {
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
}


def canonicalize_url(url: str) -> str:
    parts = urlsplit(url.strip())
    kept_params: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        key_lower = key.casefold()
        if key_lower.startswith("utm_"):
            continue
        if key_lower in _TRACKING_PARAM_NAMES:
            continue
        kept_params.append((key, value))

    return urlunsplit(
        (
            parts.scheme.casefold(),
            parts.netloc.casefold(),
            parts.path,
            urlencode(kept_params, doseq=True),
            "",
        )
    )


@dataclass(frozen=True)
class ScoreWeights:
    update_tag: float = 0.3
    update_location: float = 0.4
    priority_factor: float = 0.1
    recent_24h: float = 0.2
    recent_48h: float = 0.1
    post_base: float = 0.5
    post_tag: float = 0.2
    post_location: float = 0.2
    urgent: float = 0.3
    engagement_low: int = 10
    engagement_high: int = 50
    engagement_step: float = 0.1
    verified: float = 0.1


def _age_hours(ts: datetime | None, now: datetime) -> float | None:
    if ts is None:
        return None
    return (now - ts).total_seconds() / 3600.0


def score_update(
    update: NormalizedUpdate,
    context: DisasterContext,
    *,
    now: datetime,
    weights: ScoreWeights = ScoreWeights(),
) -> float:
    text = f"{update.title} {update.content}".casefold()
    score = 0.0

    for tag in context.tags:
        if tag.casefold() in text:
            score += weights.update_tag

    if context.location_name and context.location_name.casefold() in text:
        score += weights.update_location

    score += update.priority_level * weights.priority_factor

    age = _age_hours(update.published_at, now)
    if age is not None:
        if age < 24:
            score += weights.recent_24h
        elif age < 48:
            score += weights.recent_48h

    return round(score, 6)


def score_post(
    post: NormalizedPost,
    context: DisasterContext,
    *,
    weights: ScoreWeights = ScoreWeights(),
) -> float:
    text = post.content.casefold()
    score = weights.post_base

    for tag in context.tags:
        if tag.casefold() in text:
            score += weights.post_tag

    for part in context.location_parts:
        if part.casefold() in text:
            score += weights.post_location

    if post.is_urgent:
        score += weights.urgent

    engagement = post.metrics.engagement
    if engagement > weights.engagement_low:
        score += weights.engagement_step
    if engagement > weights.engagement_high:
        score += weights.engagement_step

    if post.verified:
        score += weights.verified

    return round(min(max(score, 0.0), 1.0), 6)


def score_records(
    records: Sequence[R],
    context: DisasterContext,
    *,
    now: datetime,
    weights: ScoreWeights = ScoreWeights(),
) -> list[R]:
    scored: list[R] = []
    for record in records:
        if isinstance(record, NormalizedUpdate):
            value = score_update(record, context, now=now, weights=weights)
        else:
            value = score_post(record, context, weights=weights)
        scored.append(replace(record, relevance_score=value))
    return scored


def dedup_key(record: NormalizedRecord) -> tuple[str, str] | None:
    if isinstance(record, NormalizedUpdate):
        if not record.url:
            return None
        return ("url", canonicalize_url(record.url))
    return (record.platform, record.id)


def dedupe(records: Sequence[R]) -> list[R]:
    """Collapse records sharing a dedup key, keeping the higher score.

    The survivor takes the position of the first occurrence; ties keep the
    earlier record.
    """
    kept: list[R] = []
    index_by_key: dict[tuple[str, str], int] = {}
    for record in records:
        key = dedup_key(record)
        if key is None:
            kept.append(record)
            continue
        index = index_by_key.get(key)
        if index is None:
            index_by_key[key] = len(kept)
            kept.append(record)
        elif record.relevance_score > kept[index].relevance_score:
            kept[index] = record
    return kept


def rank(records: Sequence[R]) -> list[R]:
    def sort_key(record: R) -> tuple[float, int, float]:
        ts = record.timestamp
        if ts is None:
            return (-record.relevance_score, 1, 0.0)
        return (-record.relevance_score, 0, -ts.timestamp())

    return sorted(records, key=sort_key)


def within_time_window(ts: datetime | None, *, now: datetime, hours: int) -> bool:
    if ts is None:
        return True
    return ts >= now - timedelta(hours=hours)


def filter_time_window(records: Sequence[R], *, now: datetime, hours: int) -> list[R]:
    return [r for r in records if within_time_window(r.timestamp, now=now, hours=hours)]


def filter_relevant_updates(
    updates: Sequence[NormalizedUpdate],
    context: DisasterContext,
    mentions_disaster: Callable[[str], bool],
) -> list[NormalizedUpdate]:
    kept: list[NormalizedUpdate] = []
    location = context.location_name.casefold()
    for update in updates:
        text = f"{update.title} {update.content}"
        lowered = text.casefold()
        if (
            mentions_disaster(text)
            or any(tag.casefold() in lowered for tag in context.tags)
            or (location and location in lowered)
        ):
            kept.append(update)
    return kept
