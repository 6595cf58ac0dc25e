"""In-memory TTL cache for episode lists with in-flight deduplication."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Sequence

from .types import CacheEntry, EpisodeRecord
from .validation import require_positive

LOGGER = logging.getLogger(__name__)

EpisodeFetch = Callable[[int], Awaitable[Sequence[EpisodeRecord]]]


class EpisodeCache:
    """Episode lists keyed by MAL id, valid for ``ttl`` seconds.

    At most one fetch runs per identifier; concurrent callers for a cold or
    expired identifier await the same task and observe the same outcome.
    Fetch tasks are shielded from waiter cancellation so a finished fetch still
    lands in the cache.
    """

    def __init__(
        self,
        fetch: EpisodeFetch,
        *,
        ttl: float = 60 * 60 * 24 * 7,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._fetch = fetch
        self._ttl = float(ttl)
        self._clock = clock
        self._entries: dict[int, CacheEntry] = {}
        self._in_flight: dict[int, asyncio.Task[tuple[EpisodeRecord, ...]]] = {}
        self._lock = asyncio.Lock()
        self._logger = logger or LOGGER

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, mal_id: int) -> CacheEntry | None:
        """Return the entry for *mal_id* if it is still fresh."""

        entry = self._entries.get(mal_id)
        if entry is not None and entry.is_fresh(self._clock(), self._ttl):
            return entry
        return None

    def in_flight(self, mal_id: int) -> bool:
        return mal_id in self._in_flight

    def clear(self) -> None:
        """Drop all stored entries; running fetches are left alone."""

        self._entries.clear()

    async def cancel_pending(self) -> None:
        """Cancel every running fetch and wait for the tasks to finish."""

        pending = list(self._in_flight.items())
        if not pending:
            return
        self._logger.debug("Cancelling %d in-flight episode fetch(es)", len(pending))
        for _, task in pending:
            task.cancel()
        await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
        # Tasks cancelled before they started never ran their own cleanup.
        for mal_id, task in pending:
            if self._in_flight.get(mal_id) is task:
                del self._in_flight[mal_id]

    async def get_or_fetch(self, mal_id: int) -> tuple[EpisodeRecord, ...]:
        """Return cached episodes for *mal_id*, fetching them when needed."""

        require_positive(mal_id, name="mal_id")
        entry = self.peek(mal_id)
        if entry is not None:
            self._logger.debug(
                "Cache hit for MAL ID %s episodes=%d", mal_id, len(entry.episodes)
            )
            return entry.episodes

        async with self._lock:
            entry = self.peek(mal_id)
            if entry is not None:
                return entry.episodes
            task = self._in_flight.get(mal_id)
            if task is None:
                self._logger.debug("Cache miss for MAL ID %s", mal_id)
                task = asyncio.create_task(
                    self._fetch_and_store(mal_id), name=f"episode-fetch-{mal_id}"
                )
                task.add_done_callback(_consume_result)
                self._in_flight[mal_id] = task
            else:
                self._logger.debug(
                    "Fetch already in progress for MAL ID %s; awaiting it", mal_id
                )

        return await asyncio.shield(task)

    async def _fetch_and_store(self, mal_id: int) -> tuple[EpisodeRecord, ...]:
        try:
            episodes = tuple(await self._fetch(mal_id))
        except BaseException:
            async with self._lock:
                self._in_flight.pop(mal_id, None)
            raise
        async with self._lock:
            self._entries[mal_id] = CacheEntry(
                identifier=mal_id, fetched_at=self._clock(), episodes=episodes
            )
            self._in_flight.pop(mal_id, None)
        self._logger.debug(
            "Stored %d episode(s) for MAL ID %s", len(episodes), mal_id
        )
        return episodes


def _consume_result(task: asyncio.Task[object]) -> None:
    # Mark failures retrieved when every waiter has gone away.
    if not task.cancelled():
        task.exception()


__all__ = ["EpisodeCache", "EpisodeFetch"]
