"""Shared types, validation and caching helpers."""

from __future__ import annotations

from .cache import EpisodeCache
from .types import EpisodeRecord, FillerStatus, SessionState, ShowQuery
from .validation import require_positive

__all__ = [
    "EpisodeCache",
    "EpisodeRecord",
    "FillerStatus",
    "SessionState",
    "ShowQuery",
    "require_positive",
]
