import sys
from pathlib import Path

# Ensure package root is importable when tests are executed directly
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_configure(config):
    """Keep ambient environment tunables from leaking into tests."""
    import os

    for name in (
        "FILLER_REQUEST_INTERVAL",
        "FILLER_MAX_ATTEMPTS",
        "FILLER_CACHE_TTL",
        "FILLER_FETCH_DEADLINE",
        "FILLER_PAGE_SIZE",
        "FILLER_BACKOFF_BASE",
        "FILLER_BACKOFF_CAP",
        "FILLER_USER_AGENT",
        "ANILIST_URL",
        "ANILIST_SEARCH_CANDIDATES",
        "JIKAN_URL",
        "HTTP_TIMEOUT",
        "FILLER_MAX_TRACKED_SESSIONS",
    ):
        os.environ.pop(name, None)
