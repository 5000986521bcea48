from __future__ import annotations

import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime


_PREFIX_RE = re.compile(r"^\s*(published|updated|posted|date)\s*:\s*", re.IGNORECASE)
_US_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_LONG_FORMATS = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%b. %d, %Y",
    "%d %B %Y",
    "%B %d, %Y %I:%M %p",
    "%Y-%m-%d",
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(tz=UTC).isoformat().replace("+00:00", "Z")


def parse_iso(ts: str) -> datetime:
    if ts.endswith("Z"):
        dt = datetime.fromisoformat(ts.removesuffix("Z") + "+00:00")
    else:
        dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz=UTC)


def parse_date(text: str | None) -> datetime | None:
    """Best-effort date parsing; returns None instead of raising."""
    if not text:
        return None
    clean = _PREFIX_RE.sub("", str(text)).strip()
    if not clean:
        return None

    try:
        return parse_iso(clean)
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(clean)
    except (TypeError, ValueError, IndexError):
        dt = None
    if dt is not None:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.astimezone(tz=UTC)

    for fmt in _LONG_FORMATS:
        try:
            return datetime.strptime(clean, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue

    match = _US_DATE_RE.search(clean)
    if match is not None:
        month, day, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day, tzinfo=UTC)
        except ValueError:
            return None
    return None
