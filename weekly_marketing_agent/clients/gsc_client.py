from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Sequence

import httplib2
from google.auth.exceptions import RefreshError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from weekly_marketing_agent.clients.google_auth import service_account_credentials
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import round_half_away, to_float, to_int
from weekly_marketing_agent.models import DateWindow
from weekly_marketing_agent.time_windows import compute_windows


class GSCClient:
    """Thin wrapper for Search Console Search Analytics API."""

    SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]
    VENDOR = "GSC"

    RISING_POSITION_DELTA = 2.0
    OPPORTUNITY_MIN_IMPRESSIONS = 50
    OPPORTUNITY_MAX_CTR_PCT = 3.0
    OPPORTUNITY_MIN_POSITION = 5.0

    def __init__(
        self,
        site_url: str,
        *,
        service_account_json: str = "",
        service_account_path: str = "",
        data_lag_days: int = 3,
        query_row_limit: int = 50,
        page_row_limit: int = 25,
        timeout_sec: int = 30,
        service: Any = None,
    ) -> None:
        self.site_url = site_url.strip()
        if not self.site_url:
            raise ConfigurationError("GSC_SITE_URL", source="gsc")
        if service is None and not (service_account_json or service_account_path):
            raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT", source="gsc")
        self.service_account_json = service_account_json
        self.service_account_path = service_account_path
        self.data_lag_days = data_lag_days
        self.query_row_limit = query_row_limit
        self.page_row_limit = page_row_limit
        self.timeout_sec = timeout_sec
        self._service = service

    def _build_service(self):
        if self._service is not None:
            return self._service
        credentials = service_account_credentials(
            inline_json=self.service_account_json,
            path_value=self.service_account_path,
            scopes=self.SCOPES,
            source="gsc",
        )
        http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout_sec))
        self._service = build("searchconsole", "v1", http=http, cache_discovery=False)
        return self._service

    def _query(
        self,
        window: DateWindow,
        dimensions: Sequence[str],
        row_limit: int,
    ) -> list[dict[str, Any]]:
        service = self._build_service()
        body: dict[str, Any] = {
            "startDate": window.start.isoformat(),
            "endDate": window.end.isoformat(),
            "dimensions": list(dimensions),
            "rowLimit": row_limit,
            "dataState": "final",
        }
        path = f"/sites/{self.site_url}/searchAnalytics/query"
        try:
            response = (
                service.searchanalytics()
                .query(siteUrl=self.site_url, body=body)
                .execute()
            )
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            raise UpstreamError(
                self.VENDOR,
                f"query for dimensions {list(dimensions)} failed: {exc}",
                path=path,
                status=int(status) if status is not None else None,
            ) from exc
        except (OSError, httplib2.HttpLib2Error, RefreshError) as exc:
            raise UpstreamError(self.VENDOR, f"request failed: {exc}", path=path) from exc
        if not isinstance(response, dict):
            raise UpstreamError(self.VENDOR, "response body is not a JSON object", path=path)
        rows = response.get("rows") or []
        return [row for row in rows if isinstance(row, dict)]

    @staticmethod
    def parse_rows(rows: Sequence[dict[str, Any]], key_name: str) -> list[dict[str, Any]]:
        parsed: list[dict[str, Any]] = []
        for row in rows:
            keys = row.get("keys") or []
            parsed.append(
                {
                    key_name: str(keys[0]) if keys else "",
                    "clicks": to_int(row.get("clicks")),
                    "impressions": to_int(row.get("impressions")),
                    "ctr": round_half_away(to_float(row.get("ctr")) * 100, 1),
                    "position": round_half_away(to_float(row.get("position")), 1),
                }
            )
        return parsed

    @staticmethod
    def annotate_with_last_week(
        this_week: Sequence[dict[str, Any]],
        last_week: Sequence[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Add last week's position plus position/click deltas (positive positionDelta = moved up)."""
        previous = {row["query"]: row for row in last_week}
        annotated: list[dict[str, Any]] = []
        for row in this_week:
            entry = dict(row)
            last = previous.get(row["query"])
            if last is None:
                entry.update({"positionLastWeek": None, "positionDelta": None, "clicksDelta": None})
            else:
                entry.update(
                    {
                        "positionLastWeek": last["position"],
                        "positionDelta": round_half_away(last["position"] - row["position"], 1),
                        "clicksDelta": row["clicks"] - last["clicks"],
                    }
                )
            annotated.append(entry)
        return annotated

    @classmethod
    def rising_queries(cls, queries: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            row
            for row in queries
            if row.get("positionDelta") is not None
            and row["positionDelta"] > cls.RISING_POSITION_DELTA
        ][:10]

    @classmethod
    def falling_queries(cls, queries: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            row
            for row in queries
            if row.get("positionDelta") is not None
            and row["positionDelta"] < -cls.RISING_POSITION_DELTA
        ][:10]

    @classmethod
    def opportunities(cls, queries: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        # High-impression queries ranking just off the top spots with weak CTR.
        candidates = [
            row
            for row in queries
            if row["impressions"] > cls.OPPORTUNITY_MIN_IMPRESSIONS
            and row["ctr"] < cls.OPPORTUNITY_MAX_CTR_PCT
            and row["position"] > cls.OPPORTUNITY_MIN_POSITION
        ]
        candidates.sort(key=lambda row: row["impressions"], reverse=True)
        return candidates[:10]

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        windows = compute_windows(run_date, lag_days=self.data_lag_days)
        current = windows["current"]
        previous = windows["previous"]

        queries_this = self.parse_rows(
            self._query(current, ["query"], self.query_row_limit), "query"
        )
        queries_last = self.parse_rows(
            self._query(previous, ["query"], self.query_row_limit), "query"
        )
        pages = self.parse_rows(self._query(current, ["page"], self.page_row_limit), "page")
        devices = self.parse_rows(self._query(current, ["device"], 10), "device")

        queries = self.annotate_with_last_week(queries_this, queries_last)
        return {
            "thisWeek": current.as_dict(),
            "lastWeek": previous.as_dict(),
            "topQueries": queries[:25],
            "topPages": pages[:15],
            "deviceBreakdown": devices,
            "risingQueries": self.rising_queries(queries),
            "fallingQueries": self.falling_queries(queries),
            "opportunities": self.opportunities(queries),
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
