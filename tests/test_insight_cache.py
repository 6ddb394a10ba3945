import asyncio

import pytest

from src.services.insight_cache import InsightCache, InsightLoader
from src.services.result_store import ResultStoreError


class FakeService:
    """Returns a distinct object per call; optionally blocks until released."""

    def __init__(self, gated=(), fail=False):
        self.calls = []
        self.gated = set(gated)
        self.fail = fail
        self.gates = {}

    def gate(self, test_id):
        if test_id not in self.gates:
            self.gates[test_id] = asyncio.Event()
        return self.gates[test_id]

    async def aggregate(self, test_id):
        self.calls.append(test_id)
        if test_id in self.gated:
            await self.gate(test_id).wait()
        if self.fail:
            raise ResultStoreError("Could not load summary")
        return {"test_id": test_id, "run": len(self.calls)}


def test_concurrent_loads_share_one_run():
    service = FakeService(gated={"t-1"})
    cache = InsightCache()
    loader = InsightLoader(service, cache)

    async def main():
        first = asyncio.ensure_future(loader.load("t-1"))
        second = asyncio.ensure_future(loader.load("t-1"))
        await asyncio.sleep(0)
        assert loader.is_loading("t-1")
        service.gate("t-1").set()
        return await asyncio.gather(first, second)

    a, b = asyncio.run(main())
    assert a is b
    assert service.calls == ["t-1"]
    assert cache.get("t-1") is a
    assert not loader.is_loading("t-1")


def test_cached_result_is_reused_until_reload():
    service = FakeService()
    cache = InsightCache()
    loader = InsightLoader(service, cache)

    async def main():
        first = await loader.load("t-1")
        again = await loader.load("t-1")
        fresh = await loader.reload("t-1")
        return first, again, fresh

    first, again, fresh = asyncio.run(main())
    assert first is again
    assert fresh is not first
    assert cache.get("t-1") is fresh
    assert service.calls == ["t-1", "t-1"]


def test_result_for_abandoned_test_is_discarded():
    service = FakeService(gated={"t-1"})
    cache = InsightCache()
    loader = InsightLoader(service, cache)

    async def main():
        stale = asyncio.ensure_future(loader.load("t-1"))
        await asyncio.sleep(0)
        current = await loader.load("t-2")
        service.gate("t-1").set()
        return await stale, current

    stale, current = asyncio.run(main())
    assert stale is None
    assert "t-1" not in cache
    assert cache.get("t-2") is current
    assert loader.active_test_id == "t-2"


def test_failures_are_not_cached():
    service = FakeService(fail=True)
    cache = InsightCache()
    loader = InsightLoader(service, cache)

    with pytest.raises(ResultStoreError):
        asyncio.run(loader.load("t-1"))
    assert "t-1" not in cache
    assert not loader.is_loading("t-1")

    service.fail = False
    result = asyncio.run(loader.load("t-1"))
    assert cache.get("t-1") is result
    assert service.calls == ["t-1", "t-1"]


def test_cache_is_shared_between_views():
    service = FakeService()
    cache = InsightCache()
    first_view = InsightLoader(service, cache)
    second_view = InsightLoader(service, cache)

    result = asyncio.run(first_view.load("t-1"))
    assert asyncio.run(second_view.load("t-1")) is result
    assert service.calls == ["t-1"]
    assert cache.loaded_at("t-1").tzinfo is not None

    cache.invalidate("t-1")
    assert cache.get("t-1") is None
