from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from app.settings import Settings


FIXTURES = Path(__file__).resolve().parent / "fixtures"

NOW = datetime(2025, 8, 28, 12, 0, tzinfo=UTC)


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values: dict = {
        "source_packs_dir": tmp_path / "sources",
        "cache_db_path": None,
        "twitter_bearer_token": None,
        "bluesky_handle": None,
        "bluesky_app_password": None,
        "twitter_rate_limit_delay": 0.0,
        "bluesky_rate_limit_delay": 0.0,
        "official_sources": "fema,redcross,cdc,nws",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
