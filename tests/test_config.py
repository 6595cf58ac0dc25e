import pytest
from pydantic import ValidationError

from fillerwatch.config import ONE_WEEK_SECONDS, Settings


def test_settings_defaults():
    settings = Settings()

    assert settings.request_interval == 0.35
    assert settings.max_attempts == 5
    assert settings.backoff_base == 1.5
    assert settings.backoff_cap == 5.0
    assert settings.page_size == 100
    assert settings.cache_ttl == ONE_WEEK_SECONDS == 604800
    assert settings.fetch_deadline == 120.0
    assert settings.anilist_url == "https://graphql.anilist.co"
    assert settings.jikan_url == "https://api.jikan.moe/v4"
    assert settings.user_agent.startswith("fillerwatch/")
    assert settings.max_tracked_sessions == 256


def test_settings_env_override(monkeypatch):
    monkeypatch.setenv("FILLER_REQUEST_INTERVAL", "0.5")
    monkeypatch.setenv("FILLER_CACHE_TTL", "3600")
    monkeypatch.setenv("jikan_url", "http://localhost:8080/v4")

    settings = Settings()

    assert settings.request_interval == 0.5
    assert settings.cache_ttl == 3600
    assert settings.jikan_url == "http://localhost:8080/v4"


def test_settings_deadline_can_be_disabled(monkeypatch):
    monkeypatch.setenv("FILLER_FETCH_DEADLINE", "")
    assert Settings().fetch_deadline is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("FILLER_MAX_ATTEMPTS", "0"),
        ("FILLER_PAGE_SIZE", "-5"),
        ("FILLER_CACHE_TTL", "0"),
        ("FILLER_REQUEST_INTERVAL", "-1"),
        ("FILLER_FETCH_DEADLINE", "-3"),
        ("FILLER_MAX_TRACKED_SESSIONS", "0"),
        ("FILLER_MAX_ATTEMPTS", "many"),
    ],
)
def test_settings_rejects_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings()


def test_settings_accept_init_overrides():
    settings = Settings(FILLER_REQUEST_INTERVAL=0, FILLER_MAX_ATTEMPTS=2)

    assert settings.request_interval == 0
    assert settings.max_attempts == 2
