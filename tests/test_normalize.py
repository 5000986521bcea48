import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from normalize.normalize import (
    Classifier,
    calculate_priority,
    classify_update_type,
    classify_weather_event,
    normalize_post,
    normalize_update,
    normalize_weather_alert,
    severity_priority,
)
from normalize.records import NormalizedPost, NormalizedUpdate, PostMetrics


FIXTURES = Path(__file__).resolve().parent / "fixtures"
FETCHED_AT = datetime(2025, 8, 28, 12, tzinfo=UTC)


@pytest.fixture
def classifier() -> Classifier:
    return Classifier(
        disaster_keywords=("flood", "evacuation", "emergency"),
        social_keywords=("flood", "rescue", "shelter"),
        urgent_keywords=("urgent", "help", "trapped", "life threatening", "now"),
    )


def test_update_type_rules_are_ordered() -> None:
    assert classify_update_type("Evacuation warning for coastal zones") == "evacuation"
    assert classify_update_type("Flood Warning extended") == "alert"
    assert classify_update_type("Travel advisory") == "advisory"
    assert classify_update_type("Status of road closures") == "update"
    assert classify_update_type("Relief centers open") == "relief"
    assert classify_update_type("Community meeting") == "general"


def test_priority_rules_are_ordered() -> None:
    assert calculate_priority("Emergency evacuation warning") == 5
    assert calculate_priority("Evacuation ordered") == 4
    assert calculate_priority("Tornado Watch") == 3
    assert calculate_priority("Wind advisory") == 2
    assert calculate_priority("Press briefing") == 1


def test_weather_event_and_severity_tables() -> None:
    assert classify_weather_event("Flash Flood Warning") == "warning"
    assert classify_weather_event("Tornado Watch") == "watch"
    assert classify_weather_event("Heat Advisory") == "advisory"
    assert classify_weather_event("Special Weather Statement") == "statement"
    assert classify_weather_event("Evacuation Immediate") == "alert"
    assert classify_weather_event(None) == "alert"
    assert severity_priority("Extreme") == 5
    assert severity_priority("severe") == 4
    assert severity_priority("Moderate") == 3
    assert severity_priority("Minor") == 2
    assert severity_priority("Unknown") == 1
    assert severity_priority(None) == 1


def test_urgency_matches_substrings(classifier: Classifier) -> None:
    assert classifier.is_urgent("We need HELP on 5th street")
    assert classifier.is_urgent("this is life threatening")
    assert classifier.is_urgent("Helping neighbors bail out the basement")
    assert not classifier.is_urgent("Quiet evening, roads are clear")
    assert not classifier.is_urgent("")


def test_post_classification_first_match(classifier: Classifier) -> None:
    assert classifier.classify_post("Need supplies, trapped upstairs") == "help_request"
    assert classifier.classify_post("Offering rides, can donate water") == "offer_help"
    assert classifier.classify_post("Official status report from the county") == "information"
    assert classifier.classify_post("Quiet evening so far") == "general"
    assert classifier.classify_post("Water needed at the stadium") == "help_request"
    assert classifier.classify_post("Volunteers are sorting supplies") == "offer_help"
    assert classifier.classify_post("More updates later today") == "information"


def test_extract_keywords_sorted_and_unique(classifier: Classifier) -> None:
    content = "URGENT flood rescue, flood shelter needed now!"
    assert classifier.extract_keywords(content) == ("flood", "now", "rescue", "shelter", "urgent")


def test_mentions_disaster_is_substring(classifier: Classifier) -> None:
    assert classifier.mentions_disaster("Flooding downtown")
    assert not classifier.mentions_disaster("Blood drive")


def test_normalize_update_classifies_title() -> None:
    update = normalize_update(
        {
            "title": "Evacuation Warning for Riverside",
            "url": "https://example.org/a",
            "date_text": "August 27, 2025",
            "content": "Leave now.",
        },
        source_id="fema",
        source_name="FEMA",
    )
    assert update is not None
    assert update.update_type == "evacuation"
    assert update.priority_level == 4
    assert update.published_at == datetime(2025, 8, 27, tzinfo=UTC)
    assert update.source == "FEMA"
    assert update.source_id == "fema"


def test_normalize_update_drops_missing_title() -> None:
    assert normalize_update({"title": "  ", "url": "x"}, source_id="cdc", source_name="CDC") is None


def test_normalize_update_keeps_unparseable_date_as_none() -> None:
    update = normalize_update(
        {"title": "Shelter list", "date_text": "yesterday-ish"}, source_id="cdc", source_name="CDC"
    )
    assert update is not None
    assert update.published_at is None


def test_normalize_weather_alert_maps_native_severity() -> None:
    doc = json.loads((FIXTURES / "nws_alerts.geojson").read_text(encoding="utf-8"))
    update = normalize_weather_alert(doc["features"][0], source_id="nws", source_name="NWS")
    assert update is not None
    assert update.update_type == "warning"
    assert update.priority_level == 4
    assert update.severity == "Severe"
    assert update.urgency == "Immediate"
    assert update.certainty == "Observed"
    assert update.published_at == datetime(2025, 8, 28, 10, tzinfo=UTC)
    assert update.url.startswith("https://api.weather.gov/alerts/")

    heat = normalize_weather_alert(doc["features"][1], source_id="nws", source_name="NWS")
    assert heat is not None
    assert heat.update_type == "advisory"
    assert heat.published_at == datetime(2025, 8, 26, 12, tzinfo=UTC)


def test_normalize_post_computes_derived_fields(classifier: Classifier) -> None:
    post = normalize_post(
        {
            "id": "1",
            "content": "Trapped by flood water, need rescue now",
            "author": "resident",
            "created_at": "2025-08-28T11:00:00Z",
            "likes": 3,
            "shares": 2,
        },
        platform="twitter",
        classifier=classifier,
        fetched_at=FETCHED_AT,
    )
    assert post is not None
    assert post.is_urgent
    assert post.classification == "help_request"
    assert post.keywords == ("flood", "now", "rescue", "trapped")
    assert post.metrics == PostMetrics(likes=3, shares=2, replies=0)
    assert post.created_at == datetime(2025, 8, 28, 11, tzinfo=UTC)


def test_normalize_post_drops_missing_author(classifier: Classifier) -> None:
    record = {"id": "1", "content": "flood", "author": None}
    assert (
        normalize_post(record, platform="twitter", classifier=classifier, fetched_at=FETCHED_AT)
        is None
    )


def test_normalize_post_defaults_created_at_to_fetch_time(classifier: Classifier) -> None:
    post = normalize_post(
        {"id": "9", "content": "hello", "author": "a"},
        platform="bluesky",
        classifier=classifier,
        fetched_at=FETCHED_AT,
    )
    assert post is not None
    assert post.created_at == FETCHED_AT


def test_records_validate_enumerations() -> None:
    with pytest.raises(ValueError):
        NormalizedUpdate(
            title="t",
            content="",
            url=None,
            source="s",
            source_id="s",
            published_at=None,
            update_type="rumor",
            priority_level=1,
        )
    with pytest.raises(ValueError):
        NormalizedPost(id="1", content="", author="a", created_at=FETCHED_AT, platform="myspace")


def test_records_survive_json_round_trip(classifier: Classifier) -> None:
    post = normalize_post(
        {"id": "1", "content": "flood rescue", "author": "a", "url": "https://x.test/1"},
        platform="twitter",
        classifier=classifier,
        fetched_at=FETCHED_AT,
    )
    assert post is not None
    assert NormalizedPost.from_dict(json.loads(json.dumps(post.to_dict()))) == post


def test_normalize_weather_alert_tolerates_non_string_fields() -> None:
    record = {
        "id": "urn:alert:1",
        "properties": {
            "headline": "Flood Warning Houston",
            "event": ["Flood Warning"],
            "severity": 4,
            "urgency": None,
        },
    }
    update = normalize_weather_alert(record, source_id="nws", source_name="NWS")
    assert update is not None
    assert update.update_type == "warning"
    assert update.priority_level == 1
    assert update.severity == "4"
    assert update.urgency is None
