from __future__ import annotations

from datetime import date

import pytest

from weekly_marketing_agent.clients.ga4_client import GA4Client
from weekly_marketing_agent.errors import ConfigurationError


def _client() -> GA4Client:
    return GA4Client("properties/123", service_account_json='{"type": "service_account"}')


OVERVIEW = {
    "metricHeaders": [{"name": "sessions"}, {"name": "newUsers"}, {"name": "bounceRate"},
                      {"name": "engagedSessions"}],
    "rows": [
        {"dimensionValues": [{"value": "this_week"}],
         "metricValues": [{"value": "1200"}, {"value": "300"}, {"value": "0.5"}, {"value": "600"}]},
        {"dimensionValues": [{"value": "last_week"}],
         "metricValues": [{"value": "1000"}, {"value": "300"}, {"value": "0.4"}, {"value": ""}]},
    ],
}


def test_missing_property_or_credentials() -> None:
    with pytest.raises(ConfigurationError) as error:
        GA4Client("", service_account_json="{}")
    assert "GA4_PROPERTY_ID" in str(error.value)
    with pytest.raises(ConfigurationError) as error:
        GA4Client("123")
    assert "GOOGLE_SERVICE_ACCOUNT" in str(error.value)


def test_property_prefix_is_stripped() -> None:
    assert _client().property_id == "123"


def test_overview_and_week_over_week() -> None:
    overview = GA4Client.parse_overview(OVERVIEW)
    assert overview["this_week"]["sessions"] == 1200.0
    assert overview["last_week"]["engagedSessions"] == 0.0

    wow = GA4Client.week_over_week(overview)
    assert wow == {
        "sessionsDelta": 20.0,
        "newUsersDelta": 0.0,
        "bounceRateDelta": 25.0,
        "engagementDelta": None,
    }


def test_week_over_week_needs_both_periods() -> None:
    assert GA4Client.week_over_week({"this_week": {"sessions": 1.0}}) is None


def test_channels_group_by_period() -> None:
    payload = {
        "rows": [
            {"dimensionValues": [{"value": "Organic Search"}, {"value": "this_week"}],
             "metricValues": [{"value": "500"}, {"value": "250"}, {"value": "0.3"}]},
            {"dimensionValues": [{"value": "Organic Search"}, {"value": "last_week"}],
             "metricValues": [{"value": "450"}, {"value": "200"}, {"value": "0.35"}]},
            {"dimensionValues": [{"value": ""}, {"value": "this_week"}],
             "metricValues": [{"value": "5"}]},
        ]
    }
    channels = GA4Client.parse_channels(payload)
    assert list(channels) == ["Organic Search"]
    assert channels["Organic Search"]["this_week"]["sessions"] == 500
    assert channels["Organic Search"]["last_week"]["bounceRate"] == 0.35


def test_fetch_snapshot_sends_named_ranges(monkeypatch) -> None:
    client = _client()
    bodies: list[dict] = []

    def fake_run_report(body: dict) -> dict:
        bodies.append(body)
        if len(bodies) == 1:
            return OVERVIEW
        if len(bodies) == 2:
            return {"rows": [{"dimensionValues": [{"value": "/"}, {"value": "Home"}],
                              "metricValues": [{"value": "900"}, {"value": "450"},
                                               {"value": "0.5"}, {"value": "61.2"}]}]}
        return {"rows": []}

    monkeypatch.setattr(client, "_run_report", fake_run_report)

    snapshot = client.fetch_snapshot(date(2024, 6, 17))

    assert bodies[0]["dateRanges"] == [
        {"startDate": "2024-06-10", "endDate": "2024-06-16", "name": "this_week"},
        {"startDate": "2024-06-03", "endDate": "2024-06-09", "name": "last_week"},
    ]
    assert bodies[1]["limit"] == 10
    assert snapshot["topPages"][0] == {
        "path": "/",
        "title": "Home",
        "sessions": 900,
        "engagedSessions": 450,
        "bounceRate": 0.5,
        "avgDuration": 61.2,
    }
    assert snapshot["weekOverWeek"]["sessionsDelta"] == 20.0
    assert snapshot["thisWeek"] == {"startDate": "2024-06-10", "endDate": "2024-06-16"}
