from dataclasses import replace
from datetime import UTC, datetime, timedelta

from ingest.context import DisasterContext
from normalize.records import NormalizedPost, NormalizedUpdate, PostMetrics
from rank.ranking import (
    ScoreWeights,
    canonicalize_url,
    dedupe,
    filter_relevant_updates,
    filter_time_window,
    rank,
    score_post,
    score_update,
    within_time_window,
)


NOW = datetime(2025, 8, 28, 12, tzinfo=UTC)
HOUSTON = DisasterContext(tags=("flood",), location_name="Houston, TX")


def _update(title: str, *, url: str | None = None, hours_ago: float | None = 1, priority: int = 1,
            content: str = "", score: float = 0.0) -> NormalizedUpdate:
    return NormalizedUpdate(
        title=title,
        content=content,
        url=url,
        source="Test",
        source_id="test",
        published_at=NOW - timedelta(hours=hours_ago) if hours_ago is not None else None,
        update_type="general",
        priority_level=priority,
        relevance_score=score,
    )


def _post(post_id: str, content: str = "", *, platform: str = "twitter", likes: int = 0,
          shares: int = 0, urgent: bool = False, verified: bool = False,
          score: float = 0.0) -> NormalizedPost:
    return NormalizedPost(
        id=post_id,
        content=content,
        author="someone",
        created_at=NOW,
        platform=platform,
        metrics=PostMetrics(likes=likes, shares=shares),
        verified=verified,
        is_urgent=urgent,
        relevance_score=score,
    )


def test_canonicalize_url_strips_tracking() -> None:
    url = "HTTPS://Example.COM/a/b?utm_source=x&id=1&fbclid=abc#frag"
    assert canonicalize_url(url) == "https://example.com/a/b?id=1"


def test_score_update_components() -> None:
    update = _update(
        "Flood warning for Houston, TX", content="Flooding expected", hours_ago=2, priority=4
    )
    # tag 0.3 + location 0.4 + priority 0.4 + fresh 0.2
    assert score_update(update, HOUSTON, now=NOW) == 1.3

    older = _update("Flood relief", hours_ago=30, priority=1)
    assert score_update(older, HOUSTON, now=NOW) == 0.5

    stale = _update("Flood relief", hours_ago=60, priority=1)
    assert score_update(stale, HOUSTON, now=NOW) == 0.4

    undated = _update("Community notice", hours_ago=None, priority=2)
    assert score_update(undated, HOUSTON, now=NOW) == 0.2


def test_score_update_counts_each_tag() -> None:
    context = DisasterContext(tags=("flood", "storm"), location_name="")
    update = _update("Storm and flood update", hours_ago=100)
    assert score_update(update, context, now=NOW) == 0.7


def test_score_update_is_monotonic_in_matches() -> None:
    base = _update("Shelter opens", hours_ago=10)
    with_tag = replace(base, title="Shelter opens after flood")
    with_both = replace(base, title="Shelter opens after flood in Houston, TX")
    scores = [score_update(u, HOUSTON, now=NOW) for u in (base, with_tag, with_both)]
    assert scores == sorted(scores)
    assert scores[0] < scores[2]


def test_score_post_components_and_clamp() -> None:
    assert score_post(_post("1", "quiet day"), HOUSTON) == 0.5
    assert score_post(_post("2", "flood in houston"), HOUSTON) == 0.9
    assert score_post(_post("3", "", likes=8, shares=5), HOUSTON) == 0.6
    assert score_post(_post("4", "", likes=40, shares=20), HOUSTON) == 0.7
    assert score_post(_post("5", "", verified=True), HOUSTON) == 0.6
    maxed = _post("6", "flood houston tx", urgent=True, likes=100, verified=True)
    assert score_post(maxed, HOUSTON) == 1.0


def test_score_post_is_monotonic_in_matches() -> None:
    plain = _post("1", "water rising")
    tagged = _post("1", "water rising flood")
    located = _post("1", "water rising flood houston")
    scores = [score_post(p, HOUSTON) for p in (plain, tagged, located)]
    assert scores == sorted(scores)


def test_custom_weights_apply() -> None:
    weights = ScoreWeights(post_base=0.0, verified=0.5)
    assert score_post(_post("1", "", verified=True), HOUSTON, weights=weights) == 0.5


def test_dedupe_keeps_higher_score_at_first_position() -> None:
    a = _update("A", url="https://x.test/1?utm_source=feed", score=0.2)
    b = _update("B", url="https://x.test/2", score=0.9)
    c = _update("C", url="https://X.test/1", score=0.7)
    d = _update("D", url=None, score=0.1)
    e = _update("E", url=None, score=0.1)

    deduped = dedupe([a, b, c, d, e])
    assert [u.title for u in deduped] == ["C", "B", "D", "E"]


def test_dedupe_tie_keeps_first() -> None:
    first = _post("42", "first", score=0.5)
    second = _post("42", "second", score=0.5)
    other_platform = _post("42", "bluesky", platform="bluesky", score=0.5)
    assert [p.content for p in dedupe([first, second, other_platform])] == ["first", "bluesky"]


def test_dedupe_is_idempotent() -> None:
    records = [
        _update("A", url="https://x.test/1", score=0.3),
        _update("B", url="https://x.test/1?utm_medium=x", score=0.6),
        _update("C", url="https://x.test/2", score=0.1),
    ]
    once = dedupe(records)
    assert dedupe(once) == once
    assert dedupe(once + once) == once


def test_rank_orders_by_score_then_recency() -> None:
    old = _update("old", hours_ago=10, score=0.5)
    new = _update("new", hours_ago=1, score=0.5)
    undated = _update("undated", hours_ago=None, score=0.5)
    top = _update("top", hours_ago=50, score=0.9)
    assert [u.title for u in rank([undated, old, top, new])] == ["top", "new", "old", "undated"]


def test_rank_is_stable_for_full_ties() -> None:
    first = _update("first", hours_ago=None, score=0.5)
    second = _update("second", hours_ago=None, score=0.5)
    assert [u.title for u in rank([first, second])] == ["first", "second"]


def test_time_window_boundary() -> None:
    edge = NOW - timedelta(hours=72)
    assert within_time_window(edge, now=NOW, hours=72)
    assert within_time_window(edge + timedelta(seconds=1), now=NOW, hours=72)
    assert not within_time_window(edge - timedelta(seconds=1), now=NOW, hours=72)
    assert within_time_window(None, now=NOW, hours=72)


def test_filter_time_window_keeps_undated() -> None:
    records = [_update("in", hours_ago=5), _update("out", hours_ago=80), _update("?", hours_ago=None)]
    kept = filter_time_window(records, now=NOW, hours=72)
    assert [u.title for u in kept] == ["in", "?"]


def test_filter_relevant_updates() -> None:
    records = [
        _update("Blood drive results"),
        _update("Evacuation centers"),
        _update("Notice", content="Flood gauges rising"),
        _update("Road work in Houston, TX"),
    ]
    kept = filter_relevant_updates(records, HOUSTON, lambda text: "evacuation" in text.casefold())
    assert [u.title for u in kept] == ["Evacuation centers", "Notice", "Road work in Houston, TX"]
