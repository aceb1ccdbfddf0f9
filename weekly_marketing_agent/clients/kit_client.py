from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from weekly_marketing_agent.clients.rest import get_json
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import average, first_present, round_half_away, to_float, to_int


class KitClient:
    """Kit (ConvertKit) v4: broadcast performance and subscriber growth."""

    API_BASE = "https://api.kit.com/v4"
    VENDOR = "Kit"
    RECENT_BROADCASTS = 4

    def __init__(self, api_secret: str, *, broadcast_count: int = 8, timeout_sec: int = 30) -> None:
        if not api_secret.strip():
            raise ConfigurationError("KIT_API_SECRET", source="kit")
        self.api_secret = api_secret.strip()
        self.broadcast_count = max(1, int(broadcast_count))
        self.timeout_sec = timeout_sec

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return get_json(
            self.VENDOR,
            f"{self.API_BASE}{path}",
            path=path,
            headers={"Authorization": f"Bearer {self.api_secret}"},
            params=params,
            timeout_sec=self.timeout_sec,
        )

    @staticmethod
    def _total_count(payload: dict[str, Any]) -> int:
        pagination = payload.get("pagination") or {}
        meta = payload.get("meta") or {}
        return to_int(first_present(pagination, "total_count", default=meta.get("total_count")))

    @staticmethod
    def _subject(broadcast: dict[str, Any]) -> str:
        template = broadcast.get("email_template")
        return str(first_present(template, "name") or broadcast.get("subject") or "Untitled")

    @classmethod
    def parse_broadcast_stats(
        cls,
        broadcast: dict[str, Any],
        stats_payload: dict[str, Any],
    ) -> dict[str, Any]:
        nested = stats_payload.get("broadcast")
        stats = first_present(nested, "stats") or stats_payload.get("stats") or {}
        if not isinstance(stats, dict):
            raise UpstreamError(cls.VENDOR, "malformed broadcast stats")
        return {
            "id": broadcast.get("id"),
            "subject": cls._subject(broadcast),
            "publishedAt": first_present(broadcast, "published_at", "send_at"),
            "recipientCount": to_int(stats.get("recipients")),
            "openRate": round_half_away(to_float(stats.get("open_rate")), 1),
            "clickRate": round_half_away(to_float(stats.get("click_rate")), 1),
            "unsubscribeRate": round_half_away(to_float(stats.get("unsubscribe_rate")), 2),
            "opens": to_int(stats.get("opens")),
            "clicks": to_int(stats.get("clicks")),
            "unsubscribes": to_int(stats.get("unsubscribes")),
        }

    @staticmethod
    def averages(broadcasts: list[dict[str, Any]]) -> dict[str, float | None]:
        result: dict[str, float | None] = {}
        for key in ("openRate", "clickRate", "unsubscribeRate"):
            value = average(item.get(key) for item in broadcasts)
            result[key] = round_half_away(value, 1) if value is not None else None
        return result

    def _broadcast_with_stats(self, broadcast: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.parse_broadcast_stats(
                broadcast, self._get(f"/broadcasts/{broadcast.get('id')}/stats")
            )
        except UpstreamError as exc:
            # Stats are not published yet for very recent sends.
            return {
                "id": broadcast.get("id"),
                "subject": self._subject(broadcast),
                "publishedAt": first_present(broadcast, "published_at", "send_at"),
                "statsAvailable": False,
                "error": str(exc),
            }

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        run_date = run_date or date.today()
        listing = self._get(
            "/broadcasts",
            {
                "per_page": self.broadcast_count,
                "sort_field": "published_at",
                "sort_order": "desc",
            },
        )
        raw_broadcasts = first_present(listing, "broadcasts", "data", default=[]) or []
        broadcasts = [
            self._broadcast_with_stats(item)
            for item in raw_broadcasts[: self.broadcast_count]
            if isinstance(item, dict)
        ]
        completed = [item for item in broadcasts if item.get("statsAvailable") is not False]
        pending = [item for item in broadcasts if item.get("statsAvailable") is False]
        recent = completed[: self.RECENT_BROADCASTS]

        active = self._total_count(self._get("/subscribers", {"status": "active", "per_page": 1}))
        total = self._total_count(self._get("/subscribers", {"per_page": 1}))
        new_this_week = self._total_count(
            self._get(
                "/subscribers",
                {
                    "status": "active",
                    "created_after": (run_date - timedelta(days=7)).isoformat(),
                    "per_page": 1,
                },
            )
        )

        ranked = sorted(recent, key=lambda item: item["openRate"], reverse=True)
        return {
            "subscribers": {"active": active, "total": total, "newThisWeek": new_this_week},
            "recentBroadcasts": recent,
            "allBroadcasts": completed,
            "pendingBroadcasts": pending,
            "averages": self.averages(recent),
            "bestBroadcast": ranked[0] if ranked else None,
            "worstBroadcast": ranked[-1] if ranked else None,
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
