from __future__ import annotations

from datetime import date

import pytest

from weekly_marketing_agent.clients.gsc_client import GSCClient
from weekly_marketing_agent.errors import ConfigurationError


class _Request:
    executed: list[dict] = []

    def __init__(self, response: dict) -> None:
        self._response = response

    def execute(self, **kwargs) -> dict:
        _Request.executed.append(kwargs)
        return self._response


class _SearchAnalytics:
    def __init__(self, responder) -> None:
        self._responder = responder
        self.bodies: list[dict] = []

    def query(self, siteUrl: str, body: dict) -> _Request:
        self.bodies.append(body)
        return _Request(self._responder(body))


class _Service:
    def __init__(self, responder) -> None:
        self.analytics = _SearchAnalytics(responder)

    def searchanalytics(self) -> _SearchAnalytics:
        return self.analytics


def _row(key: str, clicks: int, impressions: int, ctr: float, position: float) -> dict:
    return {
        "keys": [key],
        "clicks": clicks,
        "impressions": impressions,
        "ctr": ctr,
        "position": position,
    }


def _responder(body: dict) -> dict:
    dimension = body["dimensions"][0]
    if dimension == "query" and body["startDate"] == "2024-06-08":
        return {
            "rows": [
                _row("seo audit", 50, 1000, 0.05, 3.2),
                _row("marketing plan", 10, 400, 0.025, 9.0),
                _row("duct tape", 2, 100, 0.02, 12.0),
                _row("new query", 1, 10, 0.1, 4.0),
            ]
        }
    if dimension == "query":
        return {
            "rows": [
                _row("seo audit", 40, 900, 0.044, 6.5),
                _row("marketing plan", 12, 380, 0.03, 8.0),
                _row("duct tape", 5, 100, 0.05, 9.0),
            ]
        }
    if dimension == "page":
        return {"rows": [_row("https://x/", 70, 2000, 0.035, 5.0)]}
    return {"rows": [_row("MOBILE", 40, 1000, 0.04, 6.0)]}


def test_missing_site_url_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError) as error:
        GSCClient("", service=_Service(_responder))
    assert "GSC_SITE_URL" in str(error.value)


def test_annotate_with_last_week_computes_deltas() -> None:
    this_week = GSCClient.parse_rows([_row("a", 10, 100, 0.1, 4.0)], "query")
    last_week = GSCClient.parse_rows([_row("a", 6, 100, 0.06, 7.5)], "query")
    annotated = GSCClient.annotate_with_last_week(this_week, last_week)
    assert annotated[0]["positionLastWeek"] == 7.5
    assert annotated[0]["positionDelta"] == 3.5
    assert annotated[0]["clicksDelta"] == 4


def test_fetch_snapshot_uses_lagged_windows_and_buckets() -> None:
    service = _Service(_responder)
    client = GSCClient("sc-domain:example.com", service=service)

    snapshot = client.fetch_snapshot(date(2024, 6, 17))

    assert snapshot["thisWeek"] == {"startDate": "2024-06-08", "endDate": "2024-06-14"}
    assert all(body["dataState"] == "final" for body in service.analytics.bodies)

    queries = {row["query"]: row for row in snapshot["topQueries"]}
    assert queries["seo audit"]["ctr"] == 5.0
    assert queries["seo audit"]["positionDelta"] == 3.3
    assert queries["new query"]["positionLastWeek"] is None

    assert [row["query"] for row in snapshot["risingQueries"]] == ["seo audit"]
    assert [row["query"] for row in snapshot["fallingQueries"]] == ["duct tape"]
    assert [row["query"] for row in snapshot["opportunities"]] == ["marketing plan", "duct tape"]
    assert snapshot["deviceBreakdown"][0]["device"] == "MOBILE"
    assert snapshot["topPages"][0]["page"] == "https://x/"


def test_each_query_is_executed_once_without_client_retries(monkeypatch) -> None:
    monkeypatch.setattr(_Request, "executed", [])
    service = _Service(_responder)

    GSCClient("sc-domain:example.com", service=service).fetch_snapshot(date(2024, 6, 17))

    assert len(_Request.executed) == len(service.analytics.bodies) == 4
    assert all(kwargs == {} for kwargs in _Request.executed)
