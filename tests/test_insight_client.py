import pytest
import requests

from src.services.insight_client import InsightClient, InsightEndpointError, normalize_ai_insight


class FakeStore:
    def __init__(self, records):
        self.records = records

    def fetch_ai_insights(self, test_id):
        return self.records


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_empty_array_means_no_insight():
    assert normalize_ai_insight([]) is None


@pytest.mark.parametrize("payload", [None, {}, False, "oops"])
def test_falsy_or_foreign_payloads_mean_no_insight(payload):
    assert normalize_ai_insight(payload) is None


def test_object_and_one_element_array_normalize_the_same():
    record = {"purchase_drivers": "Value matters most.", "recommendations": "Lower the price."}
    as_object = normalize_ai_insight(record)
    as_array = normalize_ai_insight([record])

    assert as_object == as_array
    assert as_object.purchase_drivers == "Value matters most."


def test_first_array_element_wins():
    insight = normalize_ai_insight([{"recommendations": "newest"}, {"recommendations": "older"}])
    assert insight.recommendations == "newest"


def test_null_text_fields_are_blank():
    insight = normalize_ai_insight({
        "comparison_between_variants": "null",
        "competitive_insights_a": "  ",
        "competitive_insights_b": "\"undefined\"",
        "recommendations": "Ship variant B.",
    })
    assert insight.comparison_between_variants is None
    assert insight.competitive_for("a") is None
    assert insight.competitive_for("b") is None
    assert insight.recommendations == "Ship variant B."


def test_all_blank_record_is_no_insight():
    assert normalize_ai_insight({"recommendations": "N/A", "purchase_drivers": None}) is None


def test_fetch_reads_store_when_no_endpoint():
    client = InsightClient(store=FakeStore([]), endpoint_url="", regenerate_url="")
    assert client.fetch_insight("t-1") is None

    client = InsightClient(
        store=FakeStore([{"recommendations": "Do it."}]), endpoint_url="", regenerate_url="",
    )
    assert client.fetch_insight("t-1").recommendations == "Do it."


def test_fetch_uses_endpoint_and_normalizes(monkeypatch):
    calls = {}

    def fake_get(url, params=None, headers=None, timeout=None):
        calls["url"] = url
        calls["params"] = params
        return FakeResponse([])

    monkeypatch.setattr(requests, "get", fake_get)
    client = InsightClient(store=FakeStore([]), endpoint_url="http://insights.test/ai", regenerate_url="")

    assert client.fetch_insight("t-9") is None
    assert calls == {"url": "http://insights.test/ai", "params": {"test_id": "t-9"}}


def test_fetch_404_is_no_insight(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(None, status_code=404))
    client = InsightClient(store=FakeStore([]), endpoint_url="http://insights.test/ai", regenerate_url="")
    assert client.fetch_insight("t-1") is None


def test_fetch_network_failure_raises(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", boom)
    client = InsightClient(store=FakeStore([]), endpoint_url="http://insights.test/ai", regenerate_url="")
    with pytest.raises(InsightEndpointError):
        client.fetch_insight("t-1")


def test_regeneration_requires_configured_endpoint():
    client = InsightClient(store=FakeStore([]), endpoint_url="", regenerate_url="")
    with pytest.raises(InsightEndpointError):
        client.trigger_regeneration("t-1")


def test_regeneration_posts_test_id(monkeypatch):
    sent = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        sent["url"] = url
        sent["json"] = json
        return FakeResponse({})

    monkeypatch.setattr(requests, "post", fake_post)
    client = InsightClient(
        store=FakeStore([]), endpoint_url="", regenerate_url="http://insights.test/regen", api_key="k",
    )
    client.trigger_regeneration("t-3")
    assert sent == {"url": "http://insights.test/regen", "json": {"test_id": "t-3"}}
