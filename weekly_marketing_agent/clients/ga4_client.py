from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession

from weekly_marketing_agent.clients.google_auth import service_account_credentials
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import compute_delta, to_float, to_int
from weekly_marketing_agent.models import DateWindow
from weekly_marketing_agent.time_windows import compute_windows


OVERVIEW_METRICS = (
    "sessions",
    "engagedSessions",
    "bounceRate",
    "averageSessionDuration",
    "newUsers",
    "totalUsers",
)


class GA4Client:
    """Small GA4 Data API client (REST) for the weekly traffic snapshot."""

    SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]
    API_BASE = "https://analyticsdata.googleapis.com/v1beta"
    VENDOR = "GA4"

    def __init__(
        self,
        property_id: str,
        *,
        service_account_json: str = "",
        service_account_path: str = "",
        top_pages: int = 10,
        timeout_sec: int = 30,
    ) -> None:
        self.property_id = self._normalize_property_id(property_id)
        if not self.property_id:
            raise ConfigurationError("GA4_PROPERTY_ID", source="ga4")
        if not (service_account_json or service_account_path):
            raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT", source="ga4")
        self.service_account_json = service_account_json
        self.service_account_path = service_account_path
        self.top_pages = max(1, int(top_pages))
        self.timeout_sec = timeout_sec
        self._session: AuthorizedSession | None = None

    @staticmethod
    def _normalize_property_id(raw: str) -> str:
        value = raw.strip()
        if value.startswith("properties/"):
            value = value.split("/", 1)[1]
        return value

    def _build_session(self) -> AuthorizedSession:
        if self._session is not None:
            return self._session
        creds = service_account_credentials(
            inline_json=self.service_account_json,
            path_value=self.service_account_path,
            scopes=self.SCOPES,
            source="ga4",
        )
        self._session = AuthorizedSession(creds)
        return self._session

    def _run_report(self, body: dict[str, Any]) -> dict[str, Any]:
        session = self._build_session()
        path = f"/properties/{self.property_id}:runReport"
        try:
            response = session.post(f"{self.API_BASE}{path}", json=body, timeout=self.timeout_sec)
        except (requests.RequestException, RefreshError) as exc:
            raise UpstreamError(self.VENDOR, f"request failed: {exc}", path=path) from exc
        if not response.ok:
            detail = response.text.strip()
            if len(detail) > 400:
                detail = detail[:397] + "..."
            raise UpstreamError(
                self.VENDOR,
                detail or "No response body.",
                path=path,
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(self.VENDOR, "response body is not JSON", path=path) from exc
        if isinstance(payload, dict):
            return payload
        raise UpstreamError(self.VENDOR, "Data API returned non-object payload.", path=path)

    @staticmethod
    def _date_ranges(*windows: tuple[DateWindow, str]) -> list[dict[str, str]]:
        ranges = []
        for window, name in windows:
            entry = {"startDate": window.start.isoformat(), "endDate": window.end.isoformat()}
            if name:
                entry["name"] = name
            ranges.append(entry)
        return ranges

    @staticmethod
    def _dimension_value(row: dict[str, Any], index: int, default: str = "") -> str:
        values = row.get("dimensionValues", [])
        if not isinstance(values, list) or index >= len(values):
            return default
        raw = values[index]
        if not isinstance(raw, dict):
            return default
        return str(raw.get("value", default))

    @staticmethod
    def _metric_value(row: dict[str, Any], index: int) -> float | None:
        values = row.get("metricValues", [])
        if not isinstance(values, list) or index >= len(values):
            return None
        raw = values[index]
        if not isinstance(raw, dict):
            return None
        value = raw.get("value")
        if value in (None, ""):
            return None
        return to_float(value)

    @staticmethod
    def _rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
        rows = payload.get("rows", [])
        if not isinstance(rows, list):
            return []
        return [row for row in rows if isinstance(row, dict)]

    @classmethod
    def parse_overview(cls, payload: dict[str, Any]) -> dict[str, dict[str, float]]:
        headers = [
            str(item.get("name", ""))
            for item in payload.get("metricHeaders", [])
            if isinstance(item, dict)
        ]
        result: dict[str, dict[str, float]] = {}
        for row in cls._rows(payload):
            period = cls._dimension_value(row, 0, "unknown") or "unknown"
            metrics: dict[str, float] = {}
            for index, name in enumerate(headers):
                value = cls._metric_value(row, index)
                metrics[name] = value if value is not None else 0.0
            result[period] = metrics
        return result

    @classmethod
    def parse_pages(cls, payload: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {
                "path": cls._dimension_value(row, 0),
                "title": cls._dimension_value(row, 1),
                "sessions": to_int(cls._metric_value(row, 0)),
                "engagedSessions": to_int(cls._metric_value(row, 1)),
                "bounceRate": to_float(cls._metric_value(row, 2)),
                "avgDuration": to_float(cls._metric_value(row, 3)),
            }
            for row in cls._rows(payload)
        ]

    @classmethod
    def parse_channels(cls, payload: dict[str, Any]) -> dict[str, dict[str, dict[str, float]]]:
        result: dict[str, dict[str, dict[str, float]]] = {}
        for row in cls._rows(payload):
            channel = cls._dimension_value(row, 0).strip()
            if not channel:
                continue
            period = cls._dimension_value(row, 1, "this_week") or "this_week"
            result.setdefault(channel, {})[period] = {
                "sessions": to_int(cls._metric_value(row, 0)),
                "engagedSessions": to_int(cls._metric_value(row, 1)),
                "bounceRate": to_float(cls._metric_value(row, 2)),
            }
        return result

    @classmethod
    def parse_daily(cls, payload: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {
                "date": cls._dimension_value(row, 0),
                "sessions": to_int(cls._metric_value(row, 0)),
                "engagedSessions": to_int(cls._metric_value(row, 1)),
            }
            for row in cls._rows(payload)
        ]

    @staticmethod
    def week_over_week(overview: dict[str, dict[str, float]]) -> dict[str, float | None] | None:
        this_week = overview.get("this_week")
        last_week = overview.get("last_week")
        if not this_week or not last_week:
            return None
        return {
            "sessionsDelta": compute_delta(this_week.get("sessions"), last_week.get("sessions")),
            "newUsersDelta": compute_delta(this_week.get("newUsers"), last_week.get("newUsers")),
            "bounceRateDelta": compute_delta(
                this_week.get("bounceRate"), last_week.get("bounceRate")
            ),
            "engagementDelta": compute_delta(
                this_week.get("engagedSessions"), last_week.get("engagedSessions")
            ),
        }

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        windows = compute_windows(run_date, lag_days=1)
        current = windows["current"]
        previous = windows["previous"]
        both_weeks = self._date_ranges((current, "this_week"), (previous, "last_week"))
        this_week_only = self._date_ranges((current, ""))

        overview_payload = self._run_report(
            {
                "dateRanges": both_weeks,
                "metrics": [{"name": name} for name in OVERVIEW_METRICS],
            }
        )
        pages_payload = self._run_report(
            {
                "dateRanges": this_week_only,
                "dimensions": [{"name": "pagePath"}, {"name": "pageTitle"}],
                "metrics": [
                    {"name": "sessions"},
                    {"name": "engagedSessions"},
                    {"name": "bounceRate"},
                    {"name": "averageSessionDuration"},
                ],
                "orderBys": [{"metric": {"metricName": "sessions"}, "desc": True}],
                "limit": self.top_pages,
            }
        )
        channels_payload = self._run_report(
            {
                "dateRanges": both_weeks,
                "dimensions": [{"name": "sessionDefaultChannelGroup"}],
                "metrics": [
                    {"name": "sessions"},
                    {"name": "engagedSessions"},
                    {"name": "bounceRate"},
                ],
                "orderBys": [{"metric": {"metricName": "sessions"}, "desc": True}],
            }
        )
        daily_payload = self._run_report(
            {
                "dateRanges": this_week_only,
                "dimensions": [{"name": "date"}],
                "metrics": [{"name": "sessions"}, {"name": "engagedSessions"}],
                "orderBys": [{"dimension": {"dimensionName": "date"}}],
            }
        )

        overview = self.parse_overview(overview_payload)
        snapshot: dict[str, Any] = {
            "thisWeek": current.as_dict(),
            "lastWeek": previous.as_dict(),
            "overview": overview,
            "topPages": self.parse_pages(pages_payload),
            "channels": self.parse_channels(channels_payload),
            "daily": self.parse_daily(daily_payload),
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
        week_over_week = self.week_over_week(overview)
        if week_over_week is not None:
            snapshot["weekOverWeek"] = week_over_week
        return snapshot
