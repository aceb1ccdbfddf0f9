from __future__ import annotations

import json
from datetime import date

import pytest
import requests

from weekly_marketing_agent.clients.meta_ads_client import MetaAdsClient
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError


def _response(status_code: int, payload: dict) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.url = "https://graph.facebook.com/v19.0/act_1/insights"
    return response


def _insight(**overrides) -> dict:
    row = {
        "spend": "200.00",
        "impressions": "10000",
        "reach": "8000",
        "clicks": "150",
        "ctr": "1.5",
        "cpm": "20.0",
        "cpc": "1.333",
        "actions": [
            {"action_type": "link_click", "value": "120"},
            {"action_type": "lead", "value": "10"},
        ],
        "cost_per_action_type": [{"action_type": "lead", "value": "20.0"}],
    }
    row.update(overrides)
    return row


def test_missing_credentials_name_the_env_var() -> None:
    with pytest.raises(ConfigurationError) as error:
        MetaAdsClient("", "token")
    assert "META_AD_ACCOUNT_ID" in str(error.value)
    with pytest.raises(ConfigurationError) as error:
        MetaAdsClient("123", " ")
    assert "META_ACCESS_TOKEN" in str(error.value)


def test_account_id_gets_act_prefix() -> None:
    assert MetaAdsClient("123", "token").ad_account_id == "act_123"
    assert MetaAdsClient("act_456", "token").ad_account_id == "act_456"


def test_parse_insight_prefers_lead_then_grouped_lead() -> None:
    parsed = MetaAdsClient.parse_insight(_insight())
    assert parsed["leads"] == 10
    assert parsed["costPerLead"] == 20.0
    assert parsed["linkClicks"] == 120
    assert parsed["cpc"] == 1.33

    grouped = MetaAdsClient.parse_insight(
        _insight(
            actions=[{"action_type": "onsite_conversion.lead_grouped", "value": "4"}],
            cost_per_action_type=[
                {"action_type": "onsite_conversion.lead_grouped", "value": "12.346"}
            ],
        )
    )
    assert grouped["leads"] == 4
    assert grouped["costPerLead"] == 12.35


def test_parse_insight_without_leads() -> None:
    parsed = MetaAdsClient.parse_insight(_insight(actions=[], cost_per_action_type=None))
    assert parsed["leads"] == 0
    assert parsed["costPerLead"] is None


def test_underperforming_is_expensive_or_low_ctr_with_spend() -> None:
    client = MetaAdsClient("1", "token")
    campaigns = [
        {"campaignName": "expensive", "costPerLead": 40.0, "ctr": 2.0, "spend": 10.0},
        {"campaignName": "cheap", "costPerLead": 15.0, "ctr": 2.0, "spend": 300.0},
        {"campaignName": "low-ctr-big-spend", "costPerLead": None, "ctr": 0.3, "spend": 80.0},
        {"campaignName": "low-ctr-small-spend", "costPerLead": None, "ctr": 0.3, "spend": 20.0},
    ]
    flagged = client.underperforming(campaigns, account_cpl=20.0)
    assert [item["campaignName"] for item in flagged] == ["expensive", "low-ctr-big-spend"]


def test_fetch_snapshot_builds_account_campaign_and_ad_views(monkeypatch) -> None:
    calls: list[dict] = []

    def fake_get(url: str, **kwargs) -> requests.Response:
        params = kwargs["params"]
        calls.append(params)
        level = params["level"]
        time_range = json.loads(params["time_range"])
        if level == "account" and time_range["since"] == "2024-06-10":
            return _response(200, {"data": [_insight()]})
        if level == "account":
            return _response(200, {"data": [_insight(spend="100.00", actions=[
                {"action_type": "lead", "value": "5"}
            ])]})
        if level == "campaign":
            return _response(
                200,
                {
                    "data": [
                        _insight(campaign_name="Small", spend="40"),
                        _insight(campaign_name="Big", spend="160"),
                    ]
                },
            )
        return _response(200, {"data": [_insight(ad_name="Ad A", campaign_name="Big")]})

    monkeypatch.setattr(requests, "get", fake_get)

    snapshot = MetaAdsClient("1", "token").fetch_snapshot(date(2024, 6, 17))

    assert snapshot["thisWeek"]["dateRange"] == {"startDate": "2024-06-10", "endDate": "2024-06-16"}
    assert snapshot["weekOverWeek"]["spendDelta"] == 100.0
    assert snapshot["weekOverWeek"]["leadsDelta"] == 100.0
    assert [item["campaignName"] for item in snapshot["campaigns"]] == ["Big", "Small"]
    assert snapshot["topAds"][0]["adName"] == "Ad A"
    assert snapshot["topAds"][0]["campaignName"] == "Big"
    assert all(call["access_token"] == "token" for call in calls)
    ad_call = [call for call in calls if call["level"] == "ad"][0]
    assert json.loads(ad_call["sort"]) == ["spend_descending"]


def test_error_inside_200_body_is_upstream_error(monkeypatch) -> None:
    def fake_get(url: str, **_: object) -> requests.Response:
        return _response(200, {"error": {"message": "Invalid OAuth access token."}})

    monkeypatch.setattr(requests, "get", fake_get)

    with pytest.raises(UpstreamError) as error:
        MetaAdsClient("1", "token").fetch_snapshot(date(2024, 6, 17))
    assert error.value.vendor == "Meta"
    assert "Invalid OAuth access token." in str(error.value)


def test_campaigns_are_not_cost_flagged_without_account_cpl(monkeypatch) -> None:
    def fake_get(url: str, **kwargs) -> requests.Response:
        level = kwargs["params"]["level"]
        if level == "account":
            return _response(200, {"data": [_insight(cost_per_action_type=[])]})
        if level == "campaign":
            return _response(
                200,
                {
                    "data": [
                        _insight(campaign_name="Pricey"),
                        _insight(
                            campaign_name="Cheap",
                            cost_per_action_type=[{"action_type": "lead", "value": "5.0"}],
                        ),
                        _insight(campaign_name="No clicks", ctr="0.2", spend="90"),
                    ]
                },
            )
        return _response(200, {"data": []})

    monkeypatch.setattr(requests, "get", fake_get)

    snapshot = MetaAdsClient("1", "token").fetch_snapshot(date(2024, 6, 17))

    assert snapshot["thisWeek"]["costPerLead"] is None
    assert [item["campaignName"] for item in snapshot["underperforming"]] == ["No clicks"]
