import asyncio

import httpx
import pytest

from fillerwatch.client import RateLimitedClient, RequestThrottler


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    calls: list[float] = []

    async def fake_sleep(delay: float) -> None:
        calls.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return calls


def test_throttler_spaces_sequential_departures(sleeps):
    async def main() -> list[float]:
        throttler = RequestThrottler(0.35)
        return [await throttler.acquire() for _ in range(3)]

    waits = asyncio.run(main())

    assert waits[0] == 0.0
    assert waits[1] == pytest.approx(0.35, abs=0.05)
    assert waits[2] == pytest.approx(0.70, abs=0.05)
    assert len(sleeps) == 2


def test_throttler_orders_concurrent_callers(sleeps):
    async def main() -> list[float]:
        throttler = RequestThrottler(0.35)
        return await asyncio.gather(*(throttler.acquire() for _ in range(4)))

    waits = sorted(asyncio.run(main()))

    assert waits[0] == 0.0
    assert waits[1:] == pytest.approx([0.35, 0.70, 1.05], abs=0.05)


def test_throttler_does_not_wait_after_idle_period():
    async def main() -> tuple[float, float]:
        throttler = RequestThrottler(0.01)
        first = await throttler.acquire()
        await asyncio.sleep(0.05)
        second = await throttler.acquire()
        return first, second

    first, second = asyncio.run(main())

    assert first == 0.0
    assert second == 0.0


def test_zero_interval_disables_throttling(sleeps):
    async def main() -> list[float]:
        throttler = RequestThrottler(0)
        return [await throttler.acquire() for _ in range(5)]

    assert asyncio.run(main()) == [0.0] * 5
    assert sleeps == []


def test_throttler_rejects_negative_interval():
    with pytest.raises(ValueError):
        RequestThrottler(-0.1)


def test_rate_limited_client_shares_gate(sleeps):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"ok": True})

    async def main() -> list[int]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as raw:
            client = RateLimitedClient(raw, interval=0.35)
            responses = [
                await client.get("https://jikan.test/v4/anime/1/episodes"),
                await client.get(
                    "https://jikan.test/v4/anime/2/episodes", params={"page": 1}
                ),
                await client.get("https://jikan.test/v4/anime/3/episodes"),
            ]
            return [resp.status_code for resp in responses]

    assert asyncio.run(main()) == [200, 200, 200]
    assert seen == [
        "/v4/anime/1/episodes",
        "/v4/anime/2/episodes",
        "/v4/anime/3/episodes",
    ]
    assert len(sleeps) == 2


def test_rate_limited_client_propagates_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async def main() -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as raw:
            client = RateLimitedClient(raw, interval=0)
            await client.get("https://jikan.test/v4/anime/1/episodes")

    with pytest.raises(httpx.HTTPError):
        asyncio.run(main())
