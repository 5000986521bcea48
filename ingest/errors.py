from __future__ import annotations


class SourceError(Exception):
    """A single source failed; the aggregation carries on without it."""

    def __init__(self, source_id: str, reason: str) -> None:
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id
        self.reason = reason


class SourceUnavailable(SourceError):
    pass


class SourceTimeout(SourceUnavailable):
    pass


class ParseFailure(SourceError):
    pass


class ConfigurationError(Exception):
    """A source was requested that is unknown, disabled or missing credentials."""
