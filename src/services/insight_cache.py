"""Per-test cache of aggregation results and the loader that fills it.

One ``InsightCache`` is created by the application and handed to every view
by reference.  Each view owns an ``InsightLoader``, which tracks the test the
view is currently showing and guarantees at most one aggregation run per test
id at a time.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from src.services.aggregation import AggregationService
from src.services.insight_models import AggregationResult

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    result: AggregationResult
    loaded_at: datetime


class InsightCache:
    """A single slot per test id, overwritten wholesale on each load."""

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    def get(self, test_id: str) -> Optional[AggregationResult]:
        entry = self._entries.get(test_id)
        return entry.result if entry else None

    def loaded_at(self, test_id: str) -> Optional[datetime]:
        entry = self._entries.get(test_id)
        return entry.loaded_at if entry else None

    def put(self, test_id: str, result: AggregationResult) -> None:
        self._entries[test_id] = CacheEntry(result=result, loaded_at=datetime.now(timezone.utc))

    def invalidate(self, test_id: str) -> None:
        self._entries.pop(test_id, None)

    def __contains__(self, test_id: str) -> bool:
        return test_id in self._entries


class InsightLoader:
    """Load aggregation results for the test a view is showing."""

    def __init__(self, service: AggregationService, cache: InsightCache):
        self.service = service
        self.cache = cache
        self.active_test_id: Optional[str] = None
        self._inflight: dict[str, asyncio.Future] = {}

    def is_loading(self, test_id: str) -> bool:
        return test_id in self._inflight

    async def load(self, test_id: str, force: bool = False) -> Optional[AggregationResult]:
        """Return the result for *test_id*, aggregating it if needed.

        Returns None when the view switched to another test before the run
        finished; that result is dropped rather than cached.
        """
        self.active_test_id = test_id

        if force:
            self.cache.invalidate(test_id)
            pending = self._inflight.get(test_id)
            if pending is not None:
                # Let the older run settle; its result predates the reload.
                await asyncio.wait([pending])
        else:
            cached = self.cache.get(test_id)
            if cached is not None:
                return cached

        task = self._inflight.get(test_id)
        if task is None:
            task = asyncio.ensure_future(self._run(test_id))
            self._inflight[test_id] = task
        return await task

    async def reload(self, test_id: str) -> Optional[AggregationResult]:
        return await self.load(test_id, force=True)

    async def _run(self, test_id: str) -> Optional[AggregationResult]:
        captured = test_id
        try:
            result = await self.service.aggregate(test_id)
        finally:
            self._inflight.pop(test_id, None)

        if self.active_test_id != captured:
            logger.info(
                "Discarding aggregation for test %s; view moved on to %s",
                captured, self.active_test_id,
            )
            return None

        self.cache.put(captured, result)
        return result
