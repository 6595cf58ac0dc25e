"""Paginated Jikan episode fetching with per-page retry and backoff."""

from __future__ import annotations

import asyncio
import logging
import math

import httpx
from pydantic import ValidationError

from .client import RateLimitedClient
from .common.types import EpisodePage, EpisodeRecord
from .common.validation import require_non_negative, require_positive

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE: int = 100
DEFAULT_MAX_ATTEMPTS: int = 5
DEFAULT_BACKOFF_BASE: float = 1.5
DEFAULT_BACKOFF_CAP: float = 5.0


class EpisodeFetchError(Exception):
    """Terminal failure while walking an anime's episode pages."""

    def __init__(self, mal_id: int, page: int | None, reason: str) -> None:
        where = f"page {page}" if page is not None else "episode listing"
        super().__init__(f"MAL ID {mal_id}: {where}: {reason}")
        self.mal_id = mal_id
        self.page = page
        self.reason = reason


def parse_retry_after(value: str | None) -> float | None:
    """Return the ``Retry-After`` header as seconds, or ``None`` if unusable."""

    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if math.isnan(seconds) or seconds < 0:
        return None
    return seconds


def retry_delay(
    status: int | None,
    retry_after: str | None,
    attempt: int,
    *,
    base: float = DEFAULT_BACKOFF_BASE,
    cap: float = DEFAULT_BACKOFF_CAP,
) -> float:
    """Delay before retrying after the zero-based *attempt* failed."""

    if status == 429:
        hinted = parse_retry_after(retry_after)
        if hinted is not None:
            return min(hinted, cap)
    return min(base**attempt, cap)


def _is_retryable(status: int) -> bool:
    return status == 429 or status >= 500


class EpisodeFetcher:
    """Walk ``/anime/{id}/episodes`` until a short page signals the end."""

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        base_url: str = "https://api.jikan.moe/v4",
        page_size: int = DEFAULT_PAGE_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
        deadline: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._page_size = require_positive(int(page_size), name="page_size")
        self._max_attempts = require_positive(int(max_attempts), name="max_attempts")
        self._backoff_base = require_non_negative(backoff_base, name="backoff_base")
        self._backoff_cap = require_non_negative(backoff_cap, name="backoff_cap")
        if deadline is not None and deadline <= 0:
            raise ValueError("deadline must be positive when provided")
        self._deadline = deadline
        self._logger = logger or LOGGER

    @property
    def page_size(self) -> int:
        return self._page_size

    def page_url(self, mal_id: int) -> str:
        return f"{self._base_url}/anime/{mal_id}/episodes"

    async def fetch_all(self, mal_id: int) -> list[EpisodeRecord]:
        """Return every episode record for *mal_id*.

        Raises :class:`EpisodeFetchError` when any page exhausts its retry
        budget, returns an unexpected status or an unparseable body, or when
        the overall deadline expires. Earlier pages are discarded in that case.
        """

        require_positive(mal_id, name="mal_id")
        if self._deadline is None:
            return await self._walk_pages(mal_id)
        try:
            async with asyncio.timeout(self._deadline):
                return await self._walk_pages(mal_id)
        except TimeoutError as exc:
            self._logger.error(
                "Episode fetch for MAL ID %s exceeded %.1fs deadline",
                mal_id,
                self._deadline,
            )
            raise EpisodeFetchError(
                mal_id, None, f"deadline of {self._deadline}s exceeded"
            ) from exc

    async def _walk_pages(self, mal_id: int) -> list[EpisodeRecord]:
        episodes: list[EpisodeRecord] = []
        page = 1
        while True:
            records = await self._fetch_page(mal_id, page)
            episodes.extend(records)
            if len(records) < self._page_size:
                self._logger.debug(
                    "Finished pagination for MAL ID %s at page %d total=%d",
                    mal_id,
                    page,
                    len(episodes),
                )
                return episodes
            page += 1

    async def _fetch_page(self, mal_id: int, page: int) -> list[EpisodeRecord]:
        url = self.page_url(mal_id)
        params = {"page": page, "limit": self._page_size}
        attempt = 0
        while True:
            self._logger.debug(
                "Requesting episode page %d for MAL ID %s (attempt %d)",
                page,
                mal_id,
                attempt + 1,
            )
            status: int | None = None
            retry_after: str | None = None
            try:
                response = await self._client.get(url, params=params)
            except httpx.HTTPError as exc:
                failure = f"transport error: {exc!r}"
            else:
                status = response.status_code
                if not _is_retryable(status):
                    return self._parse_page(mal_id, page, response)
                failure = f"status {status}"
                retry_after = response.headers.get("Retry-After")

            if attempt + 1 >= self._max_attempts:
                self._logger.error(
                    "Giving up on page %d for MAL ID %s after %d attempt(s): %s",
                    page,
                    mal_id,
                    self._max_attempts,
                    failure,
                )
                raise EpisodeFetchError(
                    mal_id,
                    page,
                    f"retry budget exhausted after {self._max_attempts} attempt(s): {failure}",
                )

            delay = retry_delay(
                status,
                retry_after,
                attempt,
                base=self._backoff_base,
                cap=self._backoff_cap,
            )
            self._logger.debug(
                "Retrying page %d for MAL ID %s in %.2fs (%s)",
                page,
                mal_id,
                delay,
                failure,
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _parse_page(
        self, mal_id: int, page: int, response: httpx.Response
    ) -> list[EpisodeRecord]:
        if not response.is_success:
            self._logger.error(
                "Unexpected status %d for page %d of MAL ID %s",
                response.status_code,
                page,
                mal_id,
            )
            raise EpisodeFetchError(
                mal_id, page, f"unexpected status {response.status_code}"
            )
        try:
            parsed = EpisodePage.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            self._logger.error(
                "Decode error for page %d of MAL ID %s: %s", page, mal_id, exc
            )
            raise EpisodeFetchError(mal_id, page, "malformed response body") from exc
        return parsed.data


__all__ = [
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_BACKOFF_CAP",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_PAGE_SIZE",
    "EpisodeFetchError",
    "EpisodeFetcher",
    "parse_retry_after",
    "retry_delay",
]
