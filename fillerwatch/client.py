"""Rate-limited HTTP access shared by every episode-listing request."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import httpx

from .common.validation import require_non_negative

LOGGER = logging.getLogger(__name__)


class RequestThrottler:
    """Enforce a minimum spacing between request departures.

    Each caller reserves the earliest free departure slot while holding the
    lock and then sleeps outside of it, so departures are globally ordered
    while responses may still complete out of order.
    """

    def __init__(self, interval: float) -> None:
        self._interval = require_non_negative(interval, name="interval")
        self._next_allowed: float | None = None
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    async def acquire(self) -> float:
        """Await the caller's departure slot and return the time waited."""

        if self._interval == 0:
            return 0.0

        async with self._lock:
            now = asyncio.get_running_loop().time()
            if self._next_allowed is None or self._next_allowed < now:
                departure = now
            else:
                departure = self._next_allowed
            self._next_allowed = departure + self._interval
            wait = departure - now

        if wait > 0:
            LOGGER.debug("Throttling request for %.3fs", wait)
            await asyncio.sleep(wait)
        return wait


class RateLimitedClient:
    """Wrap an :class:`httpx.AsyncClient` behind a shared departure gate."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        interval: float = 0.35,
        throttler: RequestThrottler | None = None,
    ) -> None:
        self._client = client
        self._throttler = throttler or RequestThrottler(interval)

    @property
    def throttler(self) -> RequestThrottler:
        return self._throttler

    async def get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Issue a GET once the gate admits it.

        Transport failures propagate as :class:`httpx.HTTPError`.
        """

        await self._throttler.acquire()
        return await self._client.get(url, params=params, headers=headers)


__all__ = ["RateLimitedClient", "RequestThrottler"]
