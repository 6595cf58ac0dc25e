"""Filler lookup service tying resolution, fetching and caching together.

:class:`FillerService` owns every process-wide resource (the HTTP client, the
request gate, the episode cache and the in-flight resolution registry) and is
meant to be created once and shared.  UI code talks to it through
:class:`ShowSession` objects, one per screen visit, or through the polling
helpers :meth:`FillerService.is_filler_episode` and
:meth:`FillerService.episode_status` which never block and update once the
background work lands.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Coroutine, Iterable, Optional

import httpx

from .client import RateLimitedClient
from .common.cache import EpisodeCache
from .common.types import FillerSet, FillerStatus, SessionState, ShowQuery
from .config import Settings
from .fetcher import EpisodeFetcher, EpisodeFetchError
from .filler import filler_numbers
from .resolver import AniListResolver

LOGGER = logging.getLogger(__name__)

SessionListener = Callable[["ShowSession"], None]
TitleInput = str | Iterable[Optional[str]]


def _build_query(titles: TitleInput, year: int | str | None) -> ShowQuery:
    if isinstance(titles, str):
        titles = (titles,)
    return ShowQuery.from_titles(*titles, year=year)


def _log_unexpected(task: asyncio.Task[object]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error("Filler lookup task %s failed", task.get_name(), exc_info=exc)


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class ShowSession:
    """Filler state for one show on one screen visit.

    The MAL id is resolved at most once per session. The filler set is read
    from the shared cache on every access, so it disappears once the cached
    episode list expires. After :meth:`close` any work still in flight runs to
    completion (and may warm the shared cache) but never touches this
    session's state or listeners again.
    """

    def __init__(
        self,
        service: "FillerService",
        query: ShowQuery,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._service = service
        self._query = query
        self._logger = logger or LOGGER
        self._state = SessionState.UNRESOLVED
        self._identifier: int | None = None
        self._resolution_attempted = False
        self._task: asyncio.Task[FillerSet | None] | None = None
        self._listeners: list[SessionListener] = []
        self._closed = False

    @property
    def query(self) -> ShowQuery:
        return self._query

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identifier(self) -> int | None:
        return self._identifier

    @property
    def filler_set(self) -> FillerSet | None:
        """Filler numbers from the fresh cache entry, or ``None`` while unknown."""

        if self._closed or self._identifier is None:
            return None
        entry = self._service.cache.peek(self._identifier)
        if entry is None:
            return None
        return filler_numbers(entry.episodes)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stale(self) -> bool:
        """``True`` when a finished fetch has expired from the cache."""

        return self._state is SessionState.READY and self.filler_set is None

    def status(self, episode_number: int) -> FillerStatus:
        fillers = self.filler_set
        if fillers is None:
            return FillerStatus.UNKNOWN
        if episode_number in fillers:
            return FillerStatus.FILLER
        return FillerStatus.NOT_FILLER

    def is_filler(self, episode_number: int) -> bool:
        return self.status(episode_number) is FillerStatus.FILLER

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call *listener* on every state change; returns an unsubscribe hook."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> asyncio.Task[FillerSet | None] | None:
        """Schedule resolution and fetching once; later calls are no-ops."""

        if self._closed:
            return None
        if self._task is None:
            self._task = self._spawn(self._run(), "resolve")
        return self._task

    def refresh(self) -> asyncio.Task[FillerSet | None] | None:
        """Fetch again for the memoized identifier.

        Used after a failed fetch or once the cached list may have expired.
        Sessions whose resolution failed stay failed.
        """

        if self._closed:
            return None
        if self._task is None:
            return self.start()
        if not self._task.done():
            return self._task
        if self._identifier is None:
            return None
        self._task = self._spawn(self._load(self._identifier), "refresh")
        return self._task

    def ensure_current(self) -> asyncio.Task[FillerSet | None] | None:
        """Start, retry a failed fetch or refetch an expired list as needed.

        Must be called from a running event loop.
        """

        if self._closed or self.busy:
            return self._task
        if self._task is None:
            return self.start()
        if self._state is SessionState.FETCH_FAILED or self.stale:
            self._logger.debug(
                "Refreshing filler set for %r from state %s",
                self._query.primary_title,
                self._state.value,
            )
            return self.refresh()
        return self._task

    async def wait(self) -> FillerSet | None:
        """Start if needed and await the current attempt's filler set."""

        task = self.start() if self._task is None else self._task
        if task is None:
            return self.filler_set
        return await asyncio.shield(task)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._state = SessionState.CLOSED
        self._listeners.clear()
        self._logger.debug("Closed filler session for %r", self._query.primary_title)

    def _spawn(
        self, coro: Coroutine[Any, Any, FillerSet | None], label: str
    ) -> asyncio.Task[FillerSet | None]:
        task = asyncio.create_task(
            coro, name=f"filler-{label}-{self._query.primary_title}"
        )
        task.add_done_callback(_log_unexpected)
        return task

    async def _run(self) -> FillerSet | None:
        if not self._resolution_attempted:
            self._resolution_attempted = True
            self._set_state(SessionState.RESOLVING)
            mal_id = await self._service.resolve(self._query)
            if self._service.closed:
                self.close()
            if self._closed:
                self._logger.debug(
                    "Dropping resolution for %r; session closed",
                    self._query.primary_title,
                )
                return None
            if mal_id is None:
                self._set_state(SessionState.RESOLUTION_FAILED)
                return None
            self._identifier = mal_id
            self._set_state(SessionState.RESOLVED)
        if self._identifier is None:
            return None
        return await self._load(self._identifier)

    async def _load(self, mal_id: int) -> FillerSet | None:
        self._set_state(SessionState.FETCHING)
        try:
            fillers = await self._service.filler_set_for(mal_id)
        except EpisodeFetchError as exc:
            if self._service.closed:
                self.close()
            if not self._closed:
                self._logger.warning(
                    "Filler fetch failed for %r: %s", self._query.primary_title, exc
                )
                self._set_state(SessionState.FETCH_FAILED)
            return None
        if self._closed:
            self._logger.debug(
                "Dropping filler set for MAL ID %s; session closed", mal_id
            )
            return None
        self._logger.debug(
            "Filler episodes resolved for MAL ID %s count=%d", mal_id, len(fillers)
        )
        self._set_state(SessionState.READY)
        return fillers

    def _set_state(self, state: SessionState) -> None:
        if self._closed:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                self._logger.exception("Filler session listener raised")


class FillerService:
    """Shared entry point for filler lookups."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        owns_client: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._http_client = http_client
        self._owns_client = owns_client
        self._logger = logger or LOGGER
        self._rate_limited = RateLimitedClient(
            http_client, interval=self._settings.request_interval
        )
        self._resolver = AniListResolver(
            http_client,
            url=self._settings.anilist_url,
            per_page=self._settings.search_candidates,
        )
        self._fetcher = EpisodeFetcher(
            self._rate_limited,
            base_url=self._settings.jikan_url,
            page_size=self._settings.page_size,
            max_attempts=self._settings.max_attempts,
            backoff_base=self._settings.backoff_base,
            backoff_cap=self._settings.backoff_cap,
            deadline=self._settings.fetch_deadline,
        )
        self._cache = EpisodeCache(
            self._fetcher.fetch_all, ttl=self._settings.cache_ttl, clock=clock
        )
        self._resolving: dict[ShowQuery, asyncio.Task[int | None]] = {}
        self._resolve_lock = asyncio.Lock()
        self._sessions: OrderedDict[ShowQuery, ShowSession] = OrderedDict()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FillerService":
        """Create a service that owns its own :class:`httpx.AsyncClient`."""

        settings = settings or Settings()
        client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers={"User-Agent": settings.user_agent},
        )
        return cls(client, settings=settings, owns_client=True)

    async def __aenter__(self) -> "FillerService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close sessions, cancel shared work and release the HTTP client.

        Callers still awaiting a lookup see the failure result (``None`` or
        :class:`EpisodeFetchError`) rather than a cancellation.
        """

        if self._closed:
            return
        self._closed = True
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

        resolving = [task for task in self._resolving.values() if not task.done()]
        for task in resolving:
            task.cancel()
        if resolving:
            await asyncio.gather(*resolving, return_exceptions=True)
        await self._cache.cancel_pending()

        if self._owns_client:
            await self._http_client.aclose()
        self._logger.debug("Filler service closed")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> EpisodeCache:
        return self._cache

    @property
    def fetcher(self) -> EpisodeFetcher:
        return self._fetcher

    @property
    def resolver(self) -> AniListResolver:
        return self._resolver

    def tracked_count(self) -> int:
        return len(self._sessions)

    def _cancelled_by_shutdown(self) -> bool:
        # Shared work was cancelled by aclose, not the awaiting task itself.
        task = asyncio.current_task()
        return self._closed and (task is None or task.cancelling() == 0)

    async def resolve(self, query: ShowQuery) -> int | None:
        """Resolve *query*, sharing the request with concurrent callers.

        Results are not kept once the request completes.
        """

        if self._closed:
            return None
        async with self._resolve_lock:
            task = self._resolving.get(query)
            if task is None:
                task = asyncio.create_task(
                    self._resolver.resolve(query),
                    name=f"resolve-{query.primary_title}",
                )
                task.add_done_callback(_log_unexpected)
                self._resolving[query] = task
                task.add_done_callback(
                    lambda done, key=query: self._forget_resolution(key, done)
                )
            else:
                self._logger.debug(
                    "Resolution already in progress for %r", query.primary_title
                )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not self._cancelled_by_shutdown():
                raise
            self._logger.debug(
                "Resolution for %r abandoned at shutdown", query.primary_title
            )
            return None

    def _forget_resolution(
        self, query: ShowQuery, task: asyncio.Task[int | None]
    ) -> None:
        if self._resolving.get(query) is task:
            del self._resolving[query]

    async def filler_set_for(self, mal_id: int) -> FillerSet:
        """Return filler numbers for *mal_id*; raises :class:`EpisodeFetchError`."""

        if self._closed:
            raise EpisodeFetchError(mal_id, None, "service closed")
        try:
            episodes = await self._cache.get_or_fetch(mal_id)
        except asyncio.CancelledError:
            if not self._cancelled_by_shutdown():
                raise
            raise EpisodeFetchError(mal_id, None, "service closed") from None
        return filler_numbers(episodes)

    async def lookup(self, query: ShowQuery) -> FillerSet | None:
        """Resolve and fetch in one step, returning ``None`` on any failure."""

        mal_id = await self.resolve(query)
        if mal_id is None:
            return None
        try:
            return await self.filler_set_for(mal_id)
        except EpisodeFetchError as exc:
            self._logger.warning("Filler lookup failed: %s", exc)
            return None

    def session(
        self, titles: TitleInput, year: int | str | None = None
    ) -> ShowSession:
        """Create an independent session owned by the caller."""

        return ShowSession(self, _build_query(titles, year), logger=self._logger)

    def tracked_session(
        self, titles: TitleInput, year: int | str | None = None
    ) -> ShowSession:
        """Return the service-held session for a show, keeping it current.

        A new session is started, a failed fetch is retried and an expired
        filler set is refetched. Background work is only scheduled from a
        running event loop; elsewhere the session is returned as it is. The
        least recently used session is closed once more than
        ``max_tracked_sessions`` shows are held.
        """

        query = _build_query(titles, year)
        session = self._sessions.get(query)
        if session is None:
            session = ShowSession(self, query, logger=self._logger)
            self._sessions[query] = session
            self._evict_sessions()
        else:
            self._sessions.move_to_end(query)
        if self._closed:
            session.close()
        elif _has_running_loop():
            session.ensure_current()
        return session

    def _evict_sessions(self) -> None:
        while len(self._sessions) > self._settings.max_tracked_sessions:
            query, session = self._sessions.popitem(last=False)
            self._logger.debug("Evicting tracked session for %r", query.primary_title)
            session.close()

    def episode_status(
        self,
        titles: TitleInput,
        year: int | str | None,
        episode_number: int,
    ) -> FillerStatus:
        """Non-blocking status for one episode; ``UNKNOWN`` until known.

        Call from the event loop thread so the lookup can be scheduled.
        """

        return self.tracked_session(titles, year).status(episode_number)

    def is_filler_episode(
        self,
        titles: TitleInput,
        year: int | str | None,
        episode_number: int,
    ) -> bool:
        """``True`` only once the episode is confirmed filler.

        Call from the event loop thread so the lookup can be scheduled.
        """

        return self.tracked_session(titles, year).is_filler(episode_number)

    def release(self, titles: TitleInput, year: int | str | None = None) -> None:
        """Close the service-held session so the next call re-queries."""

        session = self._sessions.pop(_build_query(titles, year), None)
        if session is not None:
            session.close()


__all__ = ["FillerService", "ShowSession", "SessionListener"]
