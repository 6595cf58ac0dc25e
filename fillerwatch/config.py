from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__

ONE_WEEK_SECONDS: float = 60 * 60 * 24 * 7


class Settings(BaseSettings):
    """Operational tunables for filler resolution."""

    anilist_url: str = Field(
        default="https://graphql.anilist.co", validation_alias="ANILIST_URL"
    )
    jikan_url: str = Field(
        default="https://api.jikan.moe/v4", validation_alias="JIKAN_URL"
    )
    request_interval: float = Field(
        default=0.35, validation_alias="FILLER_REQUEST_INTERVAL"
    )
    max_attempts: int = Field(default=5, validation_alias="FILLER_MAX_ATTEMPTS")
    backoff_base: float = Field(default=1.5, validation_alias="FILLER_BACKOFF_BASE")
    backoff_cap: float = Field(default=5.0, validation_alias="FILLER_BACKOFF_CAP")
    page_size: int = Field(default=100, validation_alias="FILLER_PAGE_SIZE")
    cache_ttl: float = Field(
        default=ONE_WEEK_SECONDS, validation_alias="FILLER_CACHE_TTL"
    )
    fetch_deadline: float | None = Field(
        default=120.0, validation_alias="FILLER_FETCH_DEADLINE"
    )
    http_timeout: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT")
    search_candidates: int = Field(
        default=5, validation_alias="ANILIST_SEARCH_CANDIDATES"
    )
    max_tracked_sessions: int = Field(
        default=256, validation_alias="FILLER_MAX_TRACKED_SESSIONS"
    )
    user_agent: str = Field(
        default=f"fillerwatch/{__version__}", validation_alias="FILLER_USER_AGENT"
    )

    @field_validator(
        "max_attempts", "page_size", "search_candidates", "max_tracked_sessions"
    )
    @classmethod
    def _require_positive_count(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("cache_ttl", "http_timeout", "backoff_base")
    @classmethod
    def _require_positive_duration(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("request_interval", "backoff_cap")
    @classmethod
    def _require_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("value must be non-negative")
        return value

    @field_validator("fetch_deadline", mode="before")
    @classmethod
    def _parse_deadline(cls, value: object) -> object:
        if value in (None, "", "none", "None", 0, "0"):
            return None
        return value

    @field_validator("fetch_deadline")
    @classmethod
    def _require_positive_deadline(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("FILLER_FETCH_DEADLINE must be positive when set")
        return value

    model_config = SettingsConfigDict(case_sensitive=False)
