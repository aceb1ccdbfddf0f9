from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any

from weekly_marketing_agent.clients.rest import get_json
from weekly_marketing_agent.errors import ConfigurationError
from weekly_marketing_agent.metrics import compute_delta, round_half_away, to_float, to_int
from weekly_marketing_agent.models import DateWindow
from weekly_marketing_agent.time_windows import compute_windows


INSIGHT_FIELDS = (
    "campaign_name,adset_name,spend,impressions,reach,clicks,ctr,cpm,cpc,actions,"
    "cost_per_action_type,video_avg_time_watched_actions,video_p75_watched_actions"
)
AD_FIELDS = "ad_name,campaign_name,spend,impressions,clicks,ctr,actions,cost_per_action_type"
LEAD_ACTION_TYPES = ("lead", "onsite_conversion.lead_grouped")


class MetaAdsClient:
    """Graph API insights for one ad account: account, campaign and ad level."""

    API_BASE = "https://graph.facebook.com"
    VENDOR = "Meta"

    def __init__(
        self,
        ad_account_id: str,
        access_token: str,
        *,
        api_version: str = "v19.0",
        cpl_multiplier: float = 1.5,
        min_ctr_pct: float = 0.5,
        min_spend: float = 50.0,
        timeout_sec: int = 30,
    ) -> None:
        if not ad_account_id.strip():
            raise ConfigurationError("META_AD_ACCOUNT_ID", source="meta")
        if not access_token.strip():
            raise ConfigurationError("META_ACCESS_TOKEN", source="meta")
        self.ad_account_id = self._normalize_account_id(ad_account_id)
        self.access_token = access_token.strip()
        self.api_version = api_version.strip() or "v19.0"
        self.cpl_multiplier = cpl_multiplier
        self.min_ctr_pct = min_ctr_pct
        self.min_spend = min_spend
        self.timeout_sec = timeout_sec

    @staticmethod
    def _normalize_account_id(raw: str) -> str:
        value = raw.strip()
        return value if value.startswith("act_") else f"act_{value}"

    def _insights(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        path = f"/{self.api_version}/{self.ad_account_id}/insights"
        query: dict[str, Any] = {"access_token": self.access_token}
        for key, value in params.items():
            query[key] = json.dumps(value) if isinstance(value, (dict, list)) else value
        payload = get_json(
            self.VENDOR,
            f"{self.API_BASE}{path}",
            path=path,
            params=query,
            timeout_sec=self.timeout_sec,
        )
        rows = payload.get("data") or []
        return [row for row in rows if isinstance(row, dict)]

    @staticmethod
    def _time_range(window: DateWindow) -> dict[str, str]:
        return {"since": window.start.isoformat(), "until": window.end.isoformat()}

    @staticmethod
    def _action_value(actions: Any, action_type: str) -> float | None:
        if not isinstance(actions, list):
            return None
        for action in actions:
            if isinstance(action, dict) and action.get("action_type") == action_type:
                return to_float(action.get("value"))
        return None

    @classmethod
    def _lead_value(cls, actions: Any) -> float | None:
        for action_type in LEAD_ACTION_TYPES:
            value = cls._action_value(actions, action_type)
            if value is not None:
                return value
        return None

    @classmethod
    def parse_insight(cls, row: dict[str, Any]) -> dict[str, Any]:
        leads = cls._lead_value(row.get("actions"))
        cost_per_lead = cls._lead_value(row.get("cost_per_action_type"))
        link_clicks = cls._action_value(row.get("actions"), "link_click")
        return {
            "spend": to_float(row.get("spend")),
            "impressions": to_int(row.get("impressions")),
            "reach": to_int(row.get("reach")),
            "clicks": to_int(row.get("clicks")),
            "linkClicks": to_int(link_clicks),
            "ctr": round_half_away(to_float(row.get("ctr")), 2),
            "cpm": round_half_away(to_float(row.get("cpm")), 2),
            "cpc": round_half_away(to_float(row.get("cpc")), 2),
            "leads": to_int(leads),
            "costPerLead": round_half_away(cost_per_lead, 2) if cost_per_lead is not None else None,
        }

    @staticmethod
    def week_over_week(this_week: dict[str, Any], last_week: dict[str, Any]) -> dict[str, Any]:
        this_cpl = this_week.get("costPerLead")
        last_cpl = last_week.get("costPerLead")
        return {
            "spendDelta": compute_delta(this_week.get("spend"), last_week.get("spend")),
            "impressionsDelta": compute_delta(
                this_week.get("impressions"), last_week.get("impressions")
            ),
            "ctrDelta": compute_delta(this_week.get("ctr"), last_week.get("ctr")),
            "cpmDelta": compute_delta(this_week.get("cpm"), last_week.get("cpm")),
            "leadsDelta": compute_delta(this_week.get("leads"), last_week.get("leads")),
            "costPerLeadDelta": compute_delta(this_cpl, last_cpl) if this_cpl and last_cpl else None,
        }

    def underperforming(
        self,
        campaigns: list[dict[str, Any]],
        account_cpl: float | None,
    ) -> list[dict[str, Any]]:
        """Campaigns whose CPL is well above the account's, or that spend without clicks."""
        flagged: list[dict[str, Any]] = []
        for campaign in campaigns:
            cpl = campaign.get("costPerLead")
            expensive = bool(account_cpl and cpl and cpl > account_cpl * self.cpl_multiplier)
            low_ctr = campaign["ctr"] < self.min_ctr_pct and campaign["spend"] > self.min_spend
            if expensive or low_ctr:
                flagged.append(campaign)
        return flagged

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        windows = compute_windows(run_date, lag_days=1)
        current = windows["current"]
        previous = windows["previous"]

        this_rows = self._insights(
            {"fields": INSIGHT_FIELDS, "level": "account", "time_range": self._time_range(current)}
        )
        last_rows = self._insights(
            {"fields": INSIGHT_FIELDS, "level": "account", "time_range": self._time_range(previous)}
        )
        campaign_rows = self._insights(
            {
                "fields": INSIGHT_FIELDS,
                "level": "campaign",
                "time_range": self._time_range(current),
                "limit": 20,
            }
        )
        ad_rows = self._insights(
            {
                "fields": AD_FIELDS,
                "level": "ad",
                "time_range": self._time_range(current),
                "limit": 20,
                "sort": ["spend_descending"],
            }
        )

        this_week = self.parse_insight(this_rows[0]) if this_rows else self.parse_insight({})
        last_week = self.parse_insight(last_rows[0]) if last_rows else self.parse_insight({})

        campaigns = [
            {"campaignName": row.get("campaign_name", ""), **self.parse_insight(row)}
            for row in campaign_rows
        ]
        campaigns.sort(key=lambda item: item["spend"], reverse=True)
        ads = [
            {
                "adName": row.get("ad_name", ""),
                "campaignName": row.get("campaign_name", ""),
                **self.parse_insight(row),
            }
            for row in ad_rows
        ]

        return {
            "thisWeek": {**this_week, "dateRange": current.as_dict()},
            "lastWeek": {**last_week, "dateRange": previous.as_dict()},
            "weekOverWeek": self.week_over_week(this_week, last_week),
            "campaigns": campaigns,
            "topAds": ads[:10],
            "underperforming": self.underperforming(campaigns, this_week["costPerLead"]),
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
