import asyncio

import pytest

from nft_gateway.utils.cache import ResponseCache


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entry_expires_at_ttl():
    clock = Clock()
    cache = ResponseCache(clock=clock)
    cache.set("profile:fid:3", {"fid": 3})

    clock.now += 899
    assert cache.get("profile:fid:3", ttl=900) == {"fid": 3}

    clock.now += 1
    assert cache.get("profile:fid:3", ttl=900) is None
    # expired entries are dropped on read
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_single_flight_shares_one_fetch():
    cache = ResponseCache()
    calls = []
    release = asyncio.Event()

    async def fetch():
        calls.append(1)
        await release.wait()
        return {"fid": 3}

    tasks = [asyncio.ensure_future(cache.get_or_fetch("profile:fid:3", 900, fetch)) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.in_flight("profile:fid:3")
    release.set()
    results = await asyncio.gather(*tasks)

    assert calls == [1]
    assert all(result == {"fid": 3} for result in results)
    assert not cache.in_flight("profile:fid:3")


@pytest.mark.asyncio
async def test_cached_value_served_without_fetch():
    cache = ResponseCache()
    cache.set("k", "cached")

    async def fetch():
        raise AssertionError("should not fetch")

    assert await cache.get_or_fetch("k", 60, fetch) == "cached"


@pytest.mark.asyncio
async def test_failures_are_shared_and_not_cached():
    cache = ResponseCache()
    release = asyncio.Event()
    calls = []

    async def failing():
        calls.append(1)
        await release.wait()
        raise ValueError("upstream down")

    tasks = [asyncio.ensure_future(cache.get_or_fetch("k", 60, failing)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert calls == [1]
    assert all(isinstance(r, ValueError) for r in results)
    assert cache.get("k", 60) is None

    async def succeeding():
        return "fresh"

    assert await cache.get_or_fetch("k", 60, succeeding) == "fresh"


@pytest.mark.asyncio
async def test_cancelled_producer_hands_over_to_waiter():
    cache = ResponseCache()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "slow"

    async def quick():
        return "quick"

    producer = asyncio.ensure_future(cache.get_or_fetch("k", 60, slow))
    await started.wait()
    waiter = asyncio.ensure_future(cache.get_or_fetch("k", 60, quick))
    await asyncio.sleep(0)
    producer.cancel()

    assert await waiter == "quick"
