"""Resolve shows to MyAnimeList identifiers through AniList search."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import httpx
from pydantic import ValidationError

from .common.types import AniListMedia, AniListSearchResponse, ShowQuery
from .common.validation import require_positive

LOGGER = logging.getLogger(__name__)

TITLE_MATCH_SCORE: int = 10
YEAR_MATCH_SCORE: int = 5
YEAR_TOLERANCE: int = 1

SEARCH_QUERY = """
query($search: String, $perPage: Int) {
  Page(page: 1, perPage: $perPage) {
    media(search: $search, type: ANIME) {
      idMal
      title { romaji english native }
      seasonYear
    }
  }
}
""".strip()


def score_candidate(query: ShowQuery, media: AniListMedia) -> int:
    """Score how well *media* matches *query*.

    Ten points when any query title equals any candidate title variant
    (case-insensitive) and five more when both years are known and at most one
    year apart.
    """

    wanted = {title.casefold() for title in query.titles}
    titles = media.title.variants() if media.title is not None else []
    variants = {variant.casefold() for variant in titles}
    title_score = TITLE_MATCH_SCORE if wanted & variants else 0
    year_score = 0
    if query.year is not None and media.seasonYear is not None:
        if abs(media.seasonYear - query.year) <= YEAR_TOLERANCE:
            year_score = YEAR_MATCH_SCORE
    return title_score + year_score


def select_best(
    query: ShowQuery, candidates: Iterable[AniListMedia]
) -> Optional[tuple[int, int]]:
    """Return ``(mal_id, score)`` for the best positive-scoring candidate.

    Candidates without a MAL id are skipped; ties keep the first candidate.
    """

    best: Optional[tuple[int, int]] = None
    for media in candidates:
        if media.idMal is None or media.idMal <= 0:
            continue
        score = score_candidate(query, media)
        if score <= 0:
            continue
        if best is None or score > best[1]:
            best = (media.idMal, score)
    return best


class AniListResolver:
    """Map a :class:`ShowQuery` to a MAL id using one AniList search."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str = "https://graphql.anilist.co",
        per_page: int = 5,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._url = url
        self._per_page = require_positive(int(per_page), name="per_page")
        self._logger = logger or LOGGER

    def build_payload(self, query: ShowQuery) -> dict[str, object]:
        return {
            "query": SEARCH_QUERY,
            "variables": {"search": query.primary_title, "perPage": self._per_page},
        }

    async def search(self, query: ShowQuery) -> list[AniListMedia] | None:
        """Return the AniList candidates for *query*, or ``None`` on failure."""

        try:
            resp = await self._client.post(
                self._url,
                json=self.build_payload(query),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError:
            self._logger.exception(
                "HTTP error searching AniList for %r", query.primary_title
            )
            return None
        if not resp.is_success:
            self._logger.error(
                "AniList search for %r returned status %d",
                query.primary_title,
                resp.status_code,
            )
            return None
        try:
            parsed = AniListSearchResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            self._logger.error(
                "Malformed AniList response for %r: %s", query.primary_title, exc
            )
            return None
        return parsed.candidates()

    async def resolve(self, query: ShowQuery) -> Optional[int]:
        """Return the best matching MAL id for *query*, or ``None``."""

        self._logger.debug(
            "Resolving MAL ID via AniList for titles=%s year=%s",
            list(query.titles),
            query.year,
        )
        candidates = await self.search(query)
        if candidates is None:
            return None
        best = select_best(query, candidates)
        if best is None:
            self._logger.warning(
                "AniList failed to resolve MAL ID for %r (%d candidate(s))",
                query.primary_title,
                len(candidates),
            )
            return None
        mal_id, score = best
        self._logger.debug("AniList matched MAL=%s score=%d", mal_id, score)
        return mal_id


__all__ = [
    "AniListResolver",
    "SEARCH_QUERY",
    "TITLE_MATCH_SCORE",
    "YEAR_MATCH_SCORE",
    "score_candidate",
    "select_best",
]
