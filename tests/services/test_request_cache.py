import asyncio

import pytest

from pulsefolio.cache import RequestCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_load():
    cache = RequestCache(default_ttl=5)
    calls = 0
    release = asyncio.Event()

    async def loader():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"price": 1.0}

    first = asyncio.create_task(cache.fetch_or_join("price:wpls", loader))
    second = asyncio.create_task(cache.fetch_or_join("price:wpls", loader))
    await asyncio.sleep(0)
    assert cache.in_flight("price:wpls")

    release.set()
    results = await asyncio.gather(first, second)

    assert calls == 1
    assert results[0] == results[1] == {"price": 1.0}
    assert not cache.in_flight("price:wpls")


@pytest.mark.asyncio
async def test_resolved_value_is_reused_until_ttl():
    clock = FakeClock()
    cache = RequestCache(default_ttl=1.0, clock=clock)
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        return calls

    assert await cache.fetch_or_join("k", loader) == 1
    assert await cache.fetch_or_join("k", loader) == 1

    clock.now = 2.0
    assert await cache.fetch_or_join("k", loader) == 2


@pytest.mark.asyncio
async def test_failures_are_shared_and_not_cached():
    cache = RequestCache(default_ttl=5)
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    results = await asyncio.gather(
        cache.fetch_or_join("k", failing),
        cache.fetch_or_join("k", failing),
        return_exceptions=True,
    )
    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)

    async def ok():
        return "fine"

    assert await cache.fetch_or_join("k", ok) == "fine"


@pytest.mark.asyncio
async def test_cancelled_joiner_does_not_cancel_shared_load():
    cache = RequestCache(default_ttl=5)
    release = asyncio.Event()

    async def loader():
        await release.wait()
        return "value"

    doomed = asyncio.create_task(cache.fetch_or_join("k", loader))
    survivor = asyncio.create_task(cache.fetch_or_join("k", loader))
    await asyncio.sleep(0)

    doomed.cancel()
    release.set()

    assert await survivor == "value"


def test_lru_eviction():
    cache = RequestCache(default_ttl=60, max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.size() == 2
