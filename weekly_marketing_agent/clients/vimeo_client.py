from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from weekly_marketing_agent.clients.rest import get_json
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import (
    average,
    compute_delta,
    first_present,
    flag_underperformers,
    round_half_away,
    to_float,
    to_int,
)
from weekly_marketing_agent.models import DateWindow
from weekly_marketing_agent.time_windows import compute_windows


RETENTION_MILESTONES = (0.25, 0.50, 0.75, 0.90)


def _segment(item: dict[str, Any]) -> dict[str, Any]:
    bounds = item.get("segment")
    return bounds if isinstance(bounds, dict) else {}


class VimeoClient:
    """Vimeo API 3.4: per-video plays, finish rate and drop-off for the sales videos."""

    API_BASE = "https://api.vimeo.com"
    ACCEPT = "application/vnd.vimeo.*+json;version=3.4"
    VENDOR = "Vimeo"
    LISTED_VIDEOS = 25

    def __init__(
        self,
        access_token: str,
        *,
        max_videos: int = 15,
        min_plays: int = 10,
        finish_fraction: float = 0.7,
        timeout_sec: int = 30,
    ) -> None:
        if not access_token.strip():
            raise ConfigurationError("VIMEO_ACCESS_TOKEN", source="vimeo")
        self.access_token = access_token.strip()
        self.max_videos = max(1, int(max_videos))
        self.min_plays = min_plays
        self.finish_fraction = finish_fraction
        self.timeout_sec = timeout_sec

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            return get_json(
                self.VENDOR,
                f"{self.API_BASE}{path}",
                path=path,
                headers={"Authorization": f"Bearer {self.access_token}", "Accept": self.ACCEPT},
                params=params,
                timeout_sec=self.timeout_sec,
            )
        except UpstreamError as exc:
            if exc.status == 403:
                raise UpstreamError(
                    self.VENDOR,
                    "Analytics data requires Vimeo Pro or higher plan",
                    path=path,
                    status=403,
                ) from exc
            raise

    @staticmethod
    def _range(window: DateWindow) -> dict[str, str]:
        return {
            "from": f"{window.start.isoformat()}T00:00:00Z",
            "to": f"{window.end.isoformat()}T23:59:59Z",
        }

    @staticmethod
    def parse_video(item: dict[str, Any]) -> dict[str, Any]:
        uri = str(item.get("uri", ""))
        stats = item.get("stats")
        stats = stats if isinstance(stats, dict) else {}
        return {
            "id": uri.replace("/videos/", ""),
            "uri": uri,
            "title": item.get("name", ""),
            "duration": to_int(item.get("duration")),
            "totalPlays": to_int(stats.get("plays")),
            "createdAt": item.get("created_time"),
        }

    @classmethod
    def parse_analytics(cls, payload: dict[str, Any]) -> dict[str, Any]:
        data = payload.get("data")
        row = data[0] if isinstance(data, list) and data else payload
        if not isinstance(row, dict):
            raise UpstreamError(cls.VENDOR, "malformed analytics row")
        plays = to_int(first_present(row, "plays", "impressions", default=0))
        finishes = to_int(row.get("finishes"))
        impressions = to_int(row.get("impressions"))
        return {
            "plays": plays,
            "finishes": finishes,
            "impressions": impressions,
            "watchMinutes": round_half_away(to_float(row.get("watch_time")) / 60, 1),
            "playRate": round_half_away(plays / impressions * 100, 1) if impressions > 0 else None,
            "finishRate": round_half_away(finishes / plays * 100, 1) if plays > 0 else None,
        }

    @staticmethod
    def parse_engagement(payload: dict[str, Any], duration_sec: int) -> dict[str, Any] | None:
        """Retention at the 25/50/75/90 % marks plus the steepest drop between segments."""
        segments = [item for item in payload.get("data") or [] if isinstance(item, dict)]
        if not segments or not duration_sec:
            return None

        result: dict[str, Any] = {}
        for milestone in RETENTION_MILESTONES:
            target = int(duration_sec * milestone)
            match = None
            for item in segments:
                bounds = _segment(item)
                start = to_float(bounds.get("start_time"), default=float("inf"))
                end = to_float(bounds.get("end_time"), default=float("-inf"))
                if start <= target <= end:
                    match = item
                    break
            label = f"{round(milestone * 100)}pct"
            result[label] = (
                round_half_away(to_float(match.get("retention")) * 100, 1) if match else None
            )

        biggest_drop: float | None = None
        biggest_drop_at = None
        for previous, item in zip(segments, segments[1:]):
            drop = to_float(previous.get("retention")) - to_float(item.get("retention"))
            if biggest_drop is None or drop > biggest_drop:
                biggest_drop = drop
                biggest_drop_at = _segment(item).get("start_time")
        result["biggestDropSeconds"] = biggest_drop_at
        result["biggestDropPct"] = (
            round_half_away(biggest_drop * 100, 1) if biggest_drop else None
        )
        return result

    def _video_entry(
        self,
        video: dict[str, Any],
        current: DateWindow,
        previous: DateWindow,
    ) -> dict[str, Any]:
        analytics_path = f"/videos/{video['id']}/analytics"
        try:
            this_week = self.parse_analytics(
                self._get(analytics_path, {"dimension": "total", **self._range(current)})
            )
            last_week = self.parse_analytics(
                self._get(analytics_path, {"dimension": "total", **self._range(previous)})
            )
        except UpstreamError as exc:
            return {**video, "error": str(exc)}

        try:
            engagement = self.parse_engagement(
                self._get(analytics_path, {"dimension": "video_segment", **self._range(current)}),
                video["duration"],
            )
        except UpstreamError:
            # Segment retention is not offered on every plan.
            engagement = None

        return {
            **video,
            "thisWeek": this_week,
            "lastWeek": last_week,
            "playsDelta": compute_delta(this_week["plays"], last_week["plays"]),
            "finishRateDelta": compute_delta(this_week["finishRate"], last_week["finishRate"]),
            "engagement": engagement,
        }

    def low_finish_rate(
        self,
        videos: list[dict[str, Any]],
        average_rate: float | None,
    ) -> list[dict[str, Any]]:
        return flag_underperformers(
            videos,
            rate=lambda video: video["thisWeek"]["finishRate"],
            volume=lambda video: video["thisWeek"]["plays"],
            fraction=self.finish_fraction,
            min_volume=self.min_plays,
            cohort_average=average_rate or 0.0,
        )

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        listing = self._get(
            "/me/videos",
            {
                "fields": "uri,name,duration,created_time,pictures,stats",
                "per_page": self.LISTED_VIDEOS,
                "sort": "date",
                "direction": "desc",
            },
        )
        videos = [self.parse_video(item) for item in listing.get("data") or [] if isinstance(item, dict)]
        fetched_at = datetime.now(timezone.utc).isoformat()
        if not videos:
            return {"videos": [], "fetchedAt": fetched_at}

        windows = compute_windows(run_date, lag_days=1)
        entries = [
            self._video_entry(video, windows["current"], windows["previous"])
            for video in videos[: self.max_videos]
        ]
        valid = [entry for entry in entries if "error" not in entry]
        failed = [entry for entry in entries if "error" in entry]

        by_plays = sorted(valid, key=lambda item: item["thisWeek"]["plays"], reverse=True)
        average_finish = average(
            (entry["thisWeek"]["finishRate"] for entry in valid), skip_zero=True
        )
        snapshot: dict[str, Any] = {
            "thisWeek": windows["current"].as_dict(),
            "lastWeek": windows["previous"].as_dict(),
            "videos": by_plays,
            "topVideos": by_plays[:5],
            "lowFinishRateVideos": self.low_finish_rate(valid, average_finish),
            "totals": {
                "totalPlays": sum(entry["thisWeek"]["plays"] for entry in valid),
                "totalWatchMinutes": round_half_away(
                    sum(entry["thisWeek"]["watchMinutes"] for entry in valid), 1
                ),
                "avgFinishRate": round_half_away(average_finish or 0.0, 1),
            },
            "fetchedAt": fetched_at,
        }
        if failed:
            snapshot["errors"] = [
                {"title": entry["title"], "error": entry["error"]} for entry in failed
            ]
        return snapshot
