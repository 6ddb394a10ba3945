"""Narrative (AI insight) endpoint client.

The narrative service answers with either a single object, a one-element
array, or an empty array.  ``normalize_ai_insight`` collapses all of those
into ``AIInsight | None`` as soon as the payload is received.
"""
import logging
from typing import Optional

import requests

from config import (
    INSIGHT_API_KEY,
    INSIGHT_ENDPOINT_URL,
    INSIGHT_REGENERATE_URL,
    INSIGHT_REQUEST_TIMEOUT,
)
from src.services.insight_models import AIInsight
from src.services.result_store import ResultStore

logger = logging.getLogger(__name__)


class InsightEndpointError(Exception):
    """Raised when the narrative endpoint request fails."""


def normalize_ai_insight(payload) -> Optional[AIInsight]:
    """Turn any accepted payload shape into a single AIInsight (or None).

    Accepts ``None``, ``False``, ``{}``, ``[]``, ``{...}`` or ``[{...}, ...]``.
    For arrays the first element wins.  A record whose narrative fields are
    all blank is treated as no insight at all.
    """
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not payload or not isinstance(payload, dict):
        return None
    insight = AIInsight.from_record(payload)
    if insight.is_empty():
        return None
    return insight


class InsightClient:
    """Fetch and regenerate the narrative insight for a test."""

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        endpoint_url: str = INSIGHT_ENDPOINT_URL,
        regenerate_url: str = INSIGHT_REGENERATE_URL,
        api_key: str = INSIGHT_API_KEY,
        timeout: int = INSIGHT_REQUEST_TIMEOUT,
    ):
        self.store = store or ResultStore()
        self.endpoint_url = endpoint_url
        self.regenerate_url = regenerate_url
        self.api_key = api_key
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_insight(self, test_id: str) -> Optional[AIInsight]:
        """Return the normalized narrative insight for *test_id*."""
        if self.endpoint_url:
            payload = self._get(test_id)
        else:
            payload = self.store.fetch_ai_insights(test_id)
        return normalize_ai_insight(payload)

    def trigger_regeneration(self, test_id: str) -> None:
        """Ask the backend to recompute the narrative.

        The backend works asynchronously; callers reload the whole report
        afterwards instead of patching anything in place.
        """
        if not self.regenerate_url:
            raise InsightEndpointError("Narrative regeneration endpoint is not configured.")
        try:
            resp = requests.post(
                self.regenerate_url,
                json={"test_id": test_id},
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Narrative regeneration for test %s failed: %s", test_id, exc)
            raise InsightEndpointError(f"Could not regenerate insights: {exc}") from exc
        logger.info("Narrative regeneration triggered for test %s", test_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get(self, test_id: str):
        try:
            resp = requests.get(
                self.endpoint_url,
                params={"test_id": test_id},
                headers=self._headers(),
                timeout=self.timeout,
            )
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as exc:
            logger.error("Narrative fetch for test %s failed: %s", test_id, exc)
            raise InsightEndpointError(f"Could not load AI insights: {exc}") from exc
        except ValueError as exc:
            raise InsightEndpointError(f"AI insight response was not JSON: {exc}") from exc
