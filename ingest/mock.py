from __future__ import annotations

from datetime import datetime, timedelta

from ingest.context import DisasterContext
from normalize.normalize import Classifier
from normalize.records import MOCK_SOURCE, NormalizedPost, NormalizedUpdate, PostMetrics


MOCK_BASE_URL = "https://example.com/mock"

DEFAULT_TAG = "emergency"
DEFAULT_LOCATION = "Affected Area"

# (title, content, update_type, priority_level)
UPDATE_TEMPLATES: list[tuple[str, str, str, int]] = [
    (
        "{agency} Issues {kind} for {location} Due to {tag}",
        "Official {kind_lower} has been issued for {location} area due to ongoing {tag}. "
        "Residents should take immediate precautions.",
        "alert",
        4,
    ),
    (
        "Relief Operations Continue in {location} After {tag}",
        "Emergency response teams continue relief operations in {location} following "
        "the {tag}. Multiple shelters are operational.",
        "update",
        2,
    ),
    (
        "Evacuation Routes Established for {location} {tag} Response",
        "Local authorities have established evacuation routes for residents in "
        "{location} affected by the {tag}.",
        "evacuation",
        5,
    ),
]

AGENCIES = ["FEMA", "Red Cross", "Emergency Management", "National Weather Service"]
NOTICE_KINDS = ["Warning", "Advisory", "Alert", "Update"]

POST_TEMPLATES: list[str] = [
    "Need help! {tag} in {location}. Roads are blocked and we can't get out.",
    "Anyone know if shelters are open near {location}? {tag} getting worse.",
    "Volunteer here! Helping with {tag} relief in {location}. Bring supplies.",
    "URGENT: Family trapped in {location} due to {tag}. Send help!",
    "Power is out in {location}. {tag} caused major damage to infrastructure.",
    "Red Cross shelter available at {location}. {tag} victims welcome.",
    "Food distribution happening now at {location} for {tag} victims.",
    "Medical assistance needed in {location}. {tag} casualties reported.",
    "Evacuation routes from {location} are clear. Avoid downtown due to {tag}.",
    "Water supply contaminated in {location} after {tag}. Boil before drinking.",
]

MOCK_AUTHORS: list[str] = [
    "citizen_reporter",
    "local_news_99",
    "emergency_volunteer",
    "resident_alert",
    "disaster_watch",
    "community_helper",
    "safety_first",
    "neighbor_network",
    "crisis_update",
    "help_coordinator",
    "relief_worker",
    "local_resident",
]


def _placeholders(context: DisasterContext) -> tuple[str, str]:
    return (context.primary_tag or DEFAULT_TAG, context.location_name or DEFAULT_LOCATION)


def generate_updates(
    context: DisasterContext, count: int, *, now: datetime
) -> list[NormalizedUpdate]:
    tag, location = _placeholders(context)
    updates: list[NormalizedUpdate] = []
    for i in range(max(count, 0)):
        title_tpl, content_tpl, update_type, priority = UPDATE_TEMPLATES[
            i % len(UPDATE_TEMPLATES)
        ]
        kind = NOTICE_KINDS[i % len(NOTICE_KINDS)]
        values = {
            "agency": AGENCIES[i % len(AGENCIES)],
            "kind": kind,
            "kind_lower": kind.lower(),
            "location": location,
            "tag": tag,
        }
        updates.append(
            NormalizedUpdate(
                title=title_tpl.format(**values),
                content=content_tpl.format(**values),
                url=f"{MOCK_BASE_URL}/update/{i}",
                source=MOCK_SOURCE,
                source_id=MOCK_SOURCE,
                published_at=now - timedelta(hours=1 + 2 * i % 23),
                update_type=update_type,
                priority_level=priority,
            )
        )
    return updates


def generate_posts(
    context: DisasterContext,
    count: int,
    *,
    now: datetime,
    classifier: Classifier,
) -> list[NormalizedPost]:
    tag, location = _placeholders(context)
    scope = context.disaster_id or "adhoc"
    posts: list[NormalizedPost] = []
    for i in range(max(count, 0)):
        content = POST_TEMPLATES[i % len(POST_TEMPLATES)].format(tag=tag, location=location)
        author = MOCK_AUTHORS[(i * 5) % len(MOCK_AUTHORS)]
        posts.append(
            NormalizedPost(
                id=f"mock_{scope}_{i}",
                content=content,
                author=author,
                author_id=f"{author}_id",
                created_at=now - timedelta(minutes=(15 + 37 * i) % (24 * 60)),
                platform=MOCK_SOURCE,
                metrics=PostMetrics(likes=(7 * i + 3) % 50, shares=(3 * i) % 20, replies=i % 10),
                verified=i % 5 == 4,
                is_urgent=classifier.is_urgent(content),
                keywords=classifier.extract_keywords(content),
                classification=classifier.classify_post(content),
                url=f"{MOCK_BASE_URL}/post/{i}",
            )
        )
    return posts
