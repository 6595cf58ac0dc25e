"""Type definitions for show queries, episode records and external services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .validation import coerce_year


class ShowQuery(BaseModel):
    """Titles and first-air year identifying a show on the primary provider."""

    model_config = ConfigDict(frozen=True)

    titles: tuple[str, ...]
    year: Optional[int] = None

    @field_validator("titles", mode="before")
    @classmethod
    def _normalise_titles(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, Sequence):
            raise TypeError("titles must be a sequence of strings")
        titles: list[str] = []
        seen: set[str] = set()
        for raw in value:
            if raw is None:
                continue
            title = str(raw).strip()
            if not title or title.casefold() in seen:
                continue
            seen.add(title.casefold())
            titles.append(title)
        if not titles:
            raise ValueError("at least one non-empty title is required")
        return tuple(titles)

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> int | None:
        return coerce_year(value)

    @classmethod
    def from_titles(
        cls, *titles: str | None, year: int | str | None = None
    ) -> "ShowQuery":
        """Build a query from optional titles, skipping missing ones."""

        return cls(titles=titles, year=year)

    @property
    def primary_title(self) -> str:
        return self.titles[0]


class EpisodeRecord(BaseModel):
    """A single Jikan episode reduced to its number and filler flag."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    number: int = Field(alias="mal_id")
    filler: bool = False

    @field_validator("filler", mode="before")
    @classmethod
    def _null_filler(cls, value: Any) -> Any:
        return False if value is None else value


class EpisodePage(BaseModel):
    """One page of the Jikan ``/anime/{id}/episodes`` listing."""

    data: List[EpisodeRecord]


class AniListTitle(BaseModel):
    romaji: Optional[str] = None
    english: Optional[str] = None
    native: Optional[str] = None

    def variants(self) -> list[str]:
        """Return the non-empty localized titles."""

        return [t for t in (self.romaji, self.english, self.native) if t]


class AniListMedia(BaseModel):
    """Search candidate returned by the AniList ``Page.media`` query."""

    idMal: Optional[int] = None
    title: Optional[AniListTitle] = None
    seasonYear: Optional[int] = None


class AniListPage(BaseModel):
    media: List[Optional[AniListMedia]] = Field(default_factory=list)


class AniListData(BaseModel):
    Page: Optional[AniListPage] = None


class AniListSearchResponse(BaseModel):
    """Envelope of the AniList GraphQL search response."""

    data: Optional[AniListData] = None

    def candidates(self) -> list[AniListMedia]:
        if self.data is None or self.data.Page is None:
            return []
        return [media for media in self.data.Page.media if media is not None]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Episode list fetched for one MAL identifier."""

    identifier: int
    fetched_at: float
    episodes: tuple[EpisodeRecord, ...]

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at < ttl


class FillerStatus(str, Enum):
    """Classification of a single episode as seen by a consumer."""

    UNKNOWN = "unknown"
    FILLER = "filler"
    NOT_FILLER = "not_filler"


class SessionState(str, Enum):
    """Lifecycle of one show's resolve-then-fetch attempt."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    RESOLUTION_FAILED = "resolution_failed"
    FETCHING = "fetching"
    READY = "ready"
    FETCH_FAILED = "fetch_failed"
    CLOSED = "closed"


FillerSet = frozenset[int]


__all__ = [
    "AniListData",
    "AniListMedia",
    "AniListPage",
    "AniListSearchResponse",
    "AniListTitle",
    "CacheEntry",
    "EpisodePage",
    "EpisodeRecord",
    "FillerSet",
    "FillerStatus",
    "SessionState",
    "ShowQuery",
]
