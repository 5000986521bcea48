from pathlib import Path

import pytest
from pydantic import ValidationError

from app.settings import Settings, split_csv
from conftest import make_settings


def test_split_csv() -> None:
    assert split_csv(" fema, ,NWS ,") == ["fema", "NWS"]
    assert split_csv(None) == []


def test_defaults_keep_ttl_order(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    assert settings.social_media_ttl_seconds == 600
    assert settings.official_updates_ttl_seconds == 1800
    assert settings.geocoding_ttl_seconds == 86400


def test_ttl_order_is_enforced(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        make_settings(tmp_path, social_media_ttl_seconds=3600)
    with pytest.raises(ValidationError):
        make_settings(tmp_path, official_updates_ttl_seconds=90000)


def test_social_sources_follow_credentials(tmp_path: Path) -> None:
    assert make_settings(tmp_path).enabled_social_sources == []
    assert make_settings(tmp_path, twitter_bearer_token="  ").enabled_social_sources == []
    settings = make_settings(
        tmp_path,
        twitter_bearer_token="t",
        bluesky_handle="me.bsky.social",
        bluesky_app_password="pw",
    )
    assert settings.enabled_social_sources == ["twitter", "bluesky"]
    assert make_settings(tmp_path, bluesky_handle="me").enabled_social_sources == []


def test_official_sources_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OFFICIAL_SOURCES", "FEMA, cdc")
    monkeypatch.setenv("SCORE_UPDATE_LOCATION", "0.5")
    settings = Settings(_env_file=None)

    assert settings.enabled_official_sources == ["fema", "cdc"]
    weights = settings.score_weights()
    assert weights.update_location == 0.5
    assert weights.update_tag == 0.3
