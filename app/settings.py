from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rank.ranking import ScoreWeights


_DEFAULT_DISASTER_KEYWORDS = (
    "emergency,disaster,flood,flooding,hurricane,tornado,earthquake,wildfire,"
    "fire,storm,evacuation,warning,watch,alert,advisory,relief,response,"
    "recovery,preparedness,safety"
)
_DEFAULT_SOCIAL_KEYWORDS = (
    "emergency,disaster,flood,fire,earthquake,storm,hurricane,tornado,"
    "evacuation,rescue,help needed,urgent,sos,trapped,stranded,damage,shelter,"
    "relief,aid,assistance,emergency services"
)
_DEFAULT_URGENT_KEYWORDS = (
    "urgent,sos,emergency,help,trapped,stranded,life threatening,critical,"
    "immediate,now,asap"
)


def split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )

    user_agent: str = Field(
        default="DisasterResponseBot/1.0 (+https://example.com/about)",
        validation_alias="USER_AGENT",
    )
    scrape_timeout_seconds: float = Field(
        default=15.0, validation_alias="SCRAPE_TIMEOUT_SECONDS"
    )
    api_timeout_seconds: float = Field(
        default=10.0, validation_alias="API_TIMEOUT_SECONDS"
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: Path | None = Field(default=None, validation_alias="LOG_FILE")

    official_sources: str = Field(
        default="fema,redcross,cdc,nws", validation_alias="OFFICIAL_SOURCES"
    )
    source_packs_dir: Path = Field(
        default=Path("sources"), validation_alias="SOURCE_PACKS_DIR"
    )

    twitter_bearer_token: str | None = Field(
        default=None, validation_alias="TWITTER_BEARER_TOKEN"
    )
    twitter_base_url: str = Field(
        default="https://api.twitter.com/2", validation_alias="TWITTER_BASE_URL"
    )
    twitter_rate_limit_delay: float = Field(
        default=1.0, validation_alias="TWITTER_RATE_LIMIT_DELAY"
    )

    bluesky_handle: str | None = Field(default=None, validation_alias="BLUESKY_HANDLE")
    bluesky_app_password: str | None = Field(
        default=None, validation_alias="BLUESKY_APP_PASSWORD"
    )
    bluesky_base_url: str = Field(
        default="https://bsky.social/xrpc", validation_alias="BLUESKY_BASE_URL"
    )
    bluesky_rate_limit_delay: float = Field(
        default=0.5, validation_alias="BLUESKY_RATE_LIMIT_DELAY"
    )

    disaster_keywords: str = Field(
        default=_DEFAULT_DISASTER_KEYWORDS, validation_alias="DISASTER_KEYWORDS"
    )
    social_keywords: str = Field(
        default=_DEFAULT_SOCIAL_KEYWORDS, validation_alias="SOCIAL_KEYWORDS"
    )
    urgent_keywords: str = Field(
        default=_DEFAULT_URGENT_KEYWORDS, validation_alias="URGENT_KEYWORDS"
    )

    official_updates_ttl_seconds: int = Field(
        default=1800, validation_alias="OFFICIAL_UPDATES_TTL_SECONDS"
    )
    social_media_ttl_seconds: int = Field(
        default=600, validation_alias="SOCIAL_MEDIA_TTL_SECONDS"
    )
    geocoding_ttl_seconds: int = Field(
        default=86400, validation_alias="GEOCODING_TTL_SECONDS"
    )
    cache_db_path: Path | None = Field(default=None, validation_alias="CACHE_DB_PATH")

    official_max_results: int = Field(default=20, validation_alias="OFFICIAL_MAX_RESULTS")
    official_time_window_hours: int = Field(
        default=72, validation_alias="OFFICIAL_TIME_WINDOW_HOURS"
    )
    social_max_results: int = Field(default=50, validation_alias="SOCIAL_MAX_RESULTS")
    social_time_window_hours: int = Field(
        default=24, validation_alias="SOCIAL_TIME_WINDOW_HOURS"
    )
    mock_update_count: int = Field(default=3, validation_alias="MOCK_UPDATE_COUNT")
    mock_post_count: int = Field(default=10, validation_alias="MOCK_POST_COUNT")

    coordinate_sanity_check: bool = Field(
        default=False, validation_alias="COORDINATE_SANITY_CHECK"
    )

    score_update_tag: float = Field(default=0.3, validation_alias="SCORE_UPDATE_TAG")
    score_update_location: float = Field(
        default=0.4, validation_alias="SCORE_UPDATE_LOCATION"
    )
    score_priority_factor: float = Field(
        default=0.1, validation_alias="SCORE_PRIORITY_FACTOR"
    )
    score_recent_24h: float = Field(default=0.2, validation_alias="SCORE_RECENT_24H")
    score_recent_48h: float = Field(default=0.1, validation_alias="SCORE_RECENT_48H")
    score_post_base: float = Field(default=0.5, validation_alias="SCORE_POST_BASE")
    score_post_tag: float = Field(default=0.2, validation_alias="SCORE_POST_TAG")
    score_post_location: float = Field(
        default=0.2, validation_alias="SCORE_POST_LOCATION"
    )
    score_urgent: float = Field(default=0.3, validation_alias="SCORE_URGENT")
    score_engagement_low: int = Field(
        default=10, validation_alias="SCORE_ENGAGEMENT_LOW"
    )
    score_engagement_high: int = Field(
        default=50, validation_alias="SCORE_ENGAGEMENT_HIGH"
    )
    score_engagement_step: float = Field(
        default=0.1, validation_alias="SCORE_ENGAGEMENT_STEP"
    )
    score_verified: float = Field(default=0.1, validation_alias="SCORE_VERIFIED")

    @model_validator(mode="after")
    def _check_ttl_order(self) -> Settings:
        if not (
            self.social_media_ttl_seconds
            < self.official_updates_ttl_seconds
            < self.geocoding_ttl_seconds
        ):
            raise ValueError(
                "cache TTLs must satisfy social < official < geocoding "
                f"(got {self.social_media_ttl_seconds}, "
                f"{self.official_updates_ttl_seconds}, {self.geocoding_ttl_seconds})"
            )
        return self

    @property
    def enabled_official_sources(self) -> list[str]:
        return [s.casefold() for s in split_csv(self.official_sources)]

    @property
    def twitter_enabled(self) -> bool:
        return bool((self.twitter_bearer_token or "").strip())

    @property
    def bluesky_enabled(self) -> bool:
        return bool(self.bluesky_handle and self.bluesky_app_password)

    @property
    def enabled_social_sources(self) -> list[str]:
        sources: list[str] = []
        if self.twitter_enabled:
            sources.append("twitter")
        if self.bluesky_enabled:
            sources.append("bluesky")
        return sources

    def score_weights(self) -> ScoreWeights:
        return ScoreWeights(
            update_tag=self.score_update_tag,
            update_location=self.score_update_location,
            priority_factor=self.score_priority_factor,
            recent_24h=self.score_recent_24h,
            recent_48h=self.score_recent_48h,
            post_base=self.score_post_base,
            post_tag=self.score_post_tag,
            post_location=self.score_post_location,
            urgent=self.score_urgent,
            engagement_low=self.score_engagement_low,
            engagement_high=self.score_engagement_high,
            engagement_step=self.score_engagement_step,
            verified=self.score_verified,
        )
