from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import requests

from weekly_marketing_agent.clients.rest import USER_AGENT, get_json, response_message
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import (
    average,
    compute_delta,
    flag_underperformers,
    round_half_away,
    to_float,
    to_int,
)
from weekly_marketing_agent.models import DateWindow
from weekly_marketing_agent.time_windows import compute_windows


class UnbounceClient:
    """Unbounce API 0.1: landing page traffic, conversions and A/B variants."""

    API_BASE = "https://api.unbounce.com"
    VENDOR = "Unbounce"
    PAGE_COUNT = 50
    AB_TEST_PAGES = 10

    def __init__(
        self,
        *,
        access_token: str = "",
        client_id: str = "",
        client_secret: str = "",
        refresh_token: str = "",
        min_visitors: int = 50,
        conversion_fraction: float = 0.5,
        timeout_sec: int = 30,
    ) -> None:
        self.access_token = access_token.strip()
        self.client_id = client_id.strip()
        self.client_secret = client_secret.strip()
        self.refresh_token = refresh_token.strip()
        if not (self.access_token or self._refresh_configured):
            raise ConfigurationError("UNBOUNCE_ACCESS_TOKEN", source="unbounce")
        self.min_visitors = min_visitors
        self.conversion_fraction = conversion_fraction
        self.timeout_sec = timeout_sec
        self._token = ""

    @property
    def _refresh_configured(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)

    def _refresh_access_token(self) -> str:
        """Exchange the refresh token for a fresh access token; empty string on failure."""
        try:
            response = requests.post(
                f"{self.API_BASE}/0.1/oauth/token",
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            print(f"[unbounce] Token refresh failed ({exc}); using stored access token.")
            return ""
        if not response.ok:
            print(
                f"[unbounce] Token refresh failed ({response.status_code}: "
                f"{response_message(response)}); using stored access token."
            )
            return ""
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        return str(payload.get("access_token") or "") if isinstance(payload, dict) else ""

    def _access_token(self) -> str:
        if self._token:
            return self._token
        token = self._refresh_access_token() if self._refresh_configured else ""
        token = token or self.access_token
        if not token:
            raise ConfigurationError("UNBOUNCE_ACCESS_TOKEN", source="unbounce")
        self._token = token
        return token

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return get_json(
            self.VENDOR,
            f"{self.API_BASE}{path}",
            path=path,
            headers={"Authorization": f"Bearer {self._access_token()}"},
            params=params,
            timeout_sec=self.timeout_sec,
        )

    @staticmethod
    def _range(window: DateWindow) -> dict[str, str]:
        return {"from": window.start.isoformat(), "to": window.end.isoformat()}

    @classmethod
    def parse_page_stats(cls, payload: dict[str, Any]) -> dict[str, Any]:
        groups = payload.get("page_group_stats")
        stats = groups[0] if isinstance(groups, list) and groups else payload
        if not isinstance(stats, dict):
            raise UpstreamError(cls.VENDOR, "malformed page_group_stats entry")
        return {
            "visitors": to_int(stats.get("visitors")),
            "conversions": to_int(stats.get("conversions")),
            "conversionRate": round_half_away(to_float(stats.get("conversion_rate")) * 100, 1),
        }

    @staticmethod
    def parse_variants(payload: dict[str, Any]) -> list[dict[str, Any]]:
        variants = [
            {
                "variantId": item.get("id"),
                "visitors": to_int(item.get("visitors")),
                "conversionRate": round_half_away(to_float(item.get("conversion_rate")) * 100, 1),
                "conversions": to_int(item.get("conversions")),
            }
            for item in payload.get("page_group_stats") or []
            if isinstance(item, dict)
        ]
        variants.sort(key=lambda item: item["conversionRate"], reverse=True)
        return variants

    def _page_entry(
        self,
        page: dict[str, Any],
        current: DateWindow,
        previous: DateWindow,
    ) -> dict[str, Any]:
        entry = {
            "pageId": page.get("id"),
            "pageName": page.get("name", ""),
            "url": page.get("url", ""),
            "state": page.get("state", ""),
        }
        stats_path = f"/0.1/pages/{page.get('id')}/page_group_stats"
        try:
            this_week = self.parse_page_stats(self._get(stats_path, self._range(current)))
            last_week = self.parse_page_stats(self._get(stats_path, self._range(previous)))
        except UpstreamError as exc:
            entry["error"] = f"Stats unavailable: {exc.detail}"
            return entry
        entry.update(
            {
                "thisWeek": this_week,
                "lastWeek": last_week,
                "conversionDelta": compute_delta(
                    this_week["conversionRate"], last_week["conversionRate"]
                ),
                "visitorsDelta": compute_delta(this_week["visitors"], last_week["visitors"]),
            }
        )
        return entry

    def _ab_test(self, page: dict[str, Any], current: DateWindow) -> dict[str, Any] | None:
        try:
            payload = self._get(
                f"/0.1/pages/{page.get('id')}/page_group_stats",
                {**self._range(current), "include_sub_pages": "true"},
            )
        except UpstreamError as exc:
            print(f"[unbounce] Variant stats unavailable for {page.get('name', '')}: {exc.detail}")
            return None
        variants = self.parse_variants(payload)
        if len(variants) < 2:
            return None
        return {"pageName": page.get("name", ""), "variants": variants}

    def problem_pages(
        self,
        pages: list[dict[str, Any]],
        average_rate: float | None,
    ) -> list[dict[str, Any]]:
        return flag_underperformers(
            pages,
            rate=lambda page: page["thisWeek"]["conversionRate"],
            volume=lambda page: page["thisWeek"]["visitors"],
            fraction=self.conversion_fraction,
            min_volume=self.min_visitors,
            cohort_average=average_rate or 0.0,
        )

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        windows = compute_windows(run_date, lag_days=1)
        current = windows["current"]
        previous = windows["previous"]

        accounts = self._get("/0.1/accounts").get("accounts") or []
        if not accounts:
            raise UpstreamError(self.VENDOR, "No Unbounce accounts found", path="/0.1/accounts")
        account_id = accounts[0].get("id")

        pages_payload = self._get(
            f"/0.1/accounts/{account_id}/pages",
            {"count": self.PAGE_COUNT, "include_sub_pages": "true"},
        )
        pages = [page for page in pages_payload.get("pages") or [] if isinstance(page, dict)]
        entries = [self._page_entry(page, current, previous) for page in pages]

        published = [
            entry for entry in entries if entry["state"] == "published" and "error" not in entry
        ]
        average_rate = average(
            (entry["thisWeek"]["conversionRate"] for entry in published), skip_zero=True
        )
        by_visitors = sorted(published, key=lambda item: item["thisWeek"]["visitors"], reverse=True)
        by_conversion = sorted(
            published, key=lambda item: item["thisWeek"]["conversionRate"], reverse=True
        )
        ab_tests = [
            test
            for test in (self._ab_test(page, current) for page in pages[: self.AB_TEST_PAGES])
            if test is not None
        ]

        return {
            "thisWeek": current.as_dict(),
            "lastWeek": previous.as_dict(),
            "topPages": by_visitors[:10],
            "bestPages": by_conversion[:5],
            "problemPages": self.problem_pages(published, average_rate),
            "activeABTests": ab_tests,
            "unavailablePages": [entry for entry in entries if "error" in entry],
            "averageConversionRate": round_half_away(average_rate or 0.0, 1),
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
