from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ingest.dates import parse_iso, to_iso


UPDATE_TYPES = frozenset(
    {
        "alert",
        "advisory",
        "update",
        "evacuation",
        "relief",
        "general",
        "warning",
        "watch",
        "statement",
    }
)
PLATFORMS = frozenset({"twitter", "bluesky", "mock"})
POST_CLASSIFICATIONS = frozenset({"help_request", "offer_help", "information", "general"})

MOCK_SOURCE = "mock"


def _opt_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return parse_iso(value)


@dataclass(frozen=True)
class NormalizedUpdate:
    title: str
    content: str
    url: str | None
    source: str
    source_id: str
    published_at: datetime | None
    update_type: str
    priority_level: int
    relevance_score: float = 0.0
    severity: str | None = None
    urgency: str | None = None
    certainty: str | None = None

    def __post_init__(self) -> None:
        if self.update_type not in UPDATE_TYPES:
            raise ValueError(f"unknown update type: {self.update_type}")
        if not 1 <= self.priority_level <= 5:
            raise ValueError(f"priority level out of range: {self.priority_level}")

    @property
    def synthetic(self) -> bool:
        return self.source_id == MOCK_SOURCE

    @property
    def timestamp(self) -> datetime | None:
        return self.published_at

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "source": self.source,
            "source_id": self.source_id,
            "published_at": to_iso(self.published_at),
            "update_type": self.update_type,
            "priority_level": self.priority_level,
            "relevance_score": self.relevance_score,
            "severity": self.severity,
            "urgency": self.urgency,
            "certainty": self.certainty,
        }

    @classmethod
    def from_dict(cls, data: dict) -> NormalizedUpdate:
        return cls(
            title=str(data["title"]),
            content=str(data.get("content") or ""),
            url=data.get("url"),
            source=str(data["source"]),
            source_id=str(data["source_id"]),
            published_at=_opt_iso(data.get("published_at")),
            update_type=str(data["update_type"]),
            priority_level=int(data["priority_level"]),
            relevance_score=float(data.get("relevance_score") or 0.0),
            severity=data.get("severity"),
            urgency=data.get("urgency"),
            certainty=data.get("certainty"),
        )


@dataclass(frozen=True)
class PostMetrics:
    likes: int = 0
    shares: int = 0
    replies: int = 0

    @property
    def engagement(self) -> int:
        return self.likes + self.shares


@dataclass(frozen=True)
class NormalizedPost:
    id: str
    content: str
    author: str
    created_at: datetime
    platform: str
    metrics: PostMetrics = field(default_factory=PostMetrics)
    verified: bool = False
    is_urgent: bool = False
    keywords: tuple[str, ...] = ()
    classification: str = "general"
    relevance_score: float = 0.0
    url: str | None = None
    author_id: str | None = None

    def __post_init__(self) -> None:
        if self.platform not in PLATFORMS:
            raise ValueError(f"unknown platform: {self.platform}")
        if self.classification not in POST_CLASSIFICATIONS:
            raise ValueError(f"unknown classification: {self.classification}")

    @property
    def synthetic(self) -> bool:
        return self.platform == MOCK_SOURCE

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "author": self.author,
            "created_at": to_iso(self.created_at),
            "platform": self.platform,
            "metrics": {
                "likes": self.metrics.likes,
                "shares": self.metrics.shares,
                "replies": self.metrics.replies,
            },
            "verified": self.verified,
            "is_urgent": self.is_urgent,
            "keywords": list(self.keywords),
            "classification": self.classification,
            "relevance_score": self.relevance_score,
            "url": self.url,
            "author_id": self.author_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> NormalizedPost:
        metrics = data.get("metrics") or {}
        return cls(
            id=str(data["id"]),
            content=str(data["content"]),
            author=str(data["author"]),
            created_at=parse_iso(str(data["created_at"])),
            platform=str(data["platform"]),
            metrics=PostMetrics(
                likes=int(metrics.get("likes") or 0),
                shares=int(metrics.get("shares") or 0),
                replies=int(metrics.get("replies") or 0),
            ),
            verified=bool(data.get("verified")),
            is_urgent=bool(data.get("is_urgent")),
            keywords=tuple(data.get("keywords") or ()),
            classification=str(data.get("classification") or "general"),
            relevance_score=float(data.get("relevance_score") or 0.0),
            url=data.get("url"),
            author_id=data.get("author_id"),
        )


NormalizedRecord = NormalizedUpdate | NormalizedPost
