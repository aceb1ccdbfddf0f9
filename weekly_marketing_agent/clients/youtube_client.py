from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import httplib2
from google.auth.exceptions import RefreshError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from weekly_marketing_agent.clients.google_auth import (
    oauth_user_credentials,
    service_account_credentials,
)
from weekly_marketing_agent.errors import ConfigurationError, UpstreamError
from weekly_marketing_agent.metrics import compute_delta, to_float, to_int
from weekly_marketing_agent.time_windows import compute_windows


THIS_WEEK_METRICS = (
    "views,estimatedMinutesWatched,averageViewDuration,"
    "subscribersGained,subscribersLost,shares,likes,comments"
)
LAST_WEEK_METRICS = (
    "views,estimatedMinutesWatched,averageViewDuration,subscribersGained,subscribersLost"
)
TOP_VIDEO_METRICS = "views,estimatedMinutesWatched,averageViewDuration,averageViewPercentage"


class YouTubeClient:
    """Channel stats (Data API v3) plus channel analytics (YouTube Analytics API v2)."""

    SCOPES = [
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/yt-analytics.readonly",
    ]
    VENDOR = "YouTube"

    def __init__(
        self,
        *,
        oauth_client_id: str = "",
        oauth_client_secret: str = "",
        oauth_refresh_token: str = "",
        oauth_token_uri: str = "https://oauth2.googleapis.com/token",
        service_account_json: str = "",
        service_account_path: str = "",
        top_videos: int = 10,
        timeout_sec: int = 30,
        data_service: Any = None,
        analytics_service: Any = None,
    ) -> None:
        self.oauth_client_id = oauth_client_id
        self.oauth_client_secret = oauth_client_secret
        self.oauth_refresh_token = oauth_refresh_token
        self.oauth_token_uri = oauth_token_uri
        self.service_account_json = service_account_json
        self.service_account_path = service_account_path
        self.top_videos = max(1, int(top_videos))
        self.timeout_sec = timeout_sec
        self._data_service = data_service
        self._analytics_service = analytics_service

        injected = data_service is not None and analytics_service is not None
        if not (injected or self._oauth_configured or service_account_json or service_account_path):
            raise ConfigurationError("YOUTUBE_OAUTH_REFRESH_TOKEN", source="youtube")

    @property
    def _oauth_configured(self) -> bool:
        return bool(self.oauth_client_id and self.oauth_client_secret and self.oauth_refresh_token)

    def _build_credentials(self):
        if self._oauth_configured:
            return oauth_user_credentials(
                client_id=self.oauth_client_id,
                client_secret=self.oauth_client_secret,
                refresh_token=self.oauth_refresh_token,
                token_uri=self.oauth_token_uri,
                scopes=self.SCOPES,
            )
        return service_account_credentials(
            inline_json=self.service_account_json,
            path_value=self.service_account_path,
            scopes=self.SCOPES,
            source="youtube",
        )

    def _build_services(self) -> None:
        if self._data_service is not None and self._analytics_service is not None:
            return
        credentials = self._build_credentials()
        if self._data_service is None:
            http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout_sec))
            self._data_service = build("youtube", "v3", http=http, cache_discovery=False)
        if self._analytics_service is None:
            http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout_sec))
            self._analytics_service = build(
                "youtubeAnalytics", "v2", http=http, cache_discovery=False
            )

    def _execute(self, request, path: str) -> dict[str, Any]:
        try:
            response = request.execute()
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            raise UpstreamError(
                self.VENDOR,
                str(exc),
                path=path,
                status=int(status) if status is not None else None,
            ) from exc
        except (OSError, httplib2.HttpLib2Error, RefreshError) as exc:
            raise UpstreamError(self.VENDOR, f"request failed: {exc}", path=path) from exc
        if not isinstance(response, dict):
            raise UpstreamError(self.VENDOR, "response body is not a JSON object", path=path)
        return response

    @staticmethod
    def parse_channel(payload: dict[str, Any]) -> dict[str, Any]:
        items = payload.get("items") or []
        if not items:
            raise UpstreamError(
                YouTubeClient.VENDOR,
                "No YouTube channel found for these credentials",
                path="/channels",
            )
        channel = items[0]
        snippet = channel.get("snippet") or {}
        statistics = channel.get("statistics") or {}
        return {
            "id": channel.get("id", ""),
            "name": snippet.get("title", ""),
            "subscribers": to_int(statistics.get("subscriberCount")),
            "totalViews": to_int(statistics.get("viewCount")),
            "videoCount": to_int(statistics.get("videoCount")),
        }

    @staticmethod
    def parse_report_row(payload: dict[str, Any]) -> dict[str, float]:
        """Map the first analytics row onto its column header names."""
        headers = [str(item.get("name", "")) for item in payload.get("columnHeaders") or []]
        rows = payload.get("rows") or []
        if not rows:
            return {name: 0 for name in headers}
        return {name: to_float(value) for name, value in zip(headers, rows[0])}

    @staticmethod
    def parse_report_rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
        headers = [str(item.get("name", "")) for item in payload.get("columnHeaders") or []]
        return [dict(zip(headers, row)) for row in payload.get("rows") or []]

    @staticmethod
    def week_over_week(this_week: dict[str, float], last_week: dict[str, float]) -> dict[str, Any]:
        return {
            "viewsDelta": compute_delta(this_week.get("views"), last_week.get("views")),
            "watchTimeDelta": compute_delta(
                this_week.get("estimatedMinutesWatched"),
                last_week.get("estimatedMinutesWatched"),
            ),
            "avgDurationDelta": compute_delta(
                this_week.get("averageViewDuration"), last_week.get("averageViewDuration")
            ),
            "subscriberNetThis": to_int(this_week.get("subscribersGained"))
            - to_int(this_week.get("subscribersLost")),
            "subscriberNetLast": to_int(last_week.get("subscribersGained"))
            - to_int(last_week.get("subscribersLost")),
        }

    @staticmethod
    def join_video_titles(
        rows: list[dict[str, Any]],
        videos_payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        titles = {
            item.get("id"): (item.get("snippet") or {}).get("title")
            for item in videos_payload.get("items") or []
        }
        return [
            {
                "videoId": row.get("video", ""),
                "title": titles.get(row.get("video")) or "Unknown",
                "views": to_int(row.get("views")),
                "watchMinutes": to_int(row.get("estimatedMinutesWatched")),
                "avgViewDuration": to_int(row.get("averageViewDuration")),
                "avgViewPercentage": to_float(row.get("averageViewPercentage")),
            }
            for row in rows
        ]

    def _report(self, channel_id: str, start: date, end: date, **extra: Any) -> dict[str, Any]:
        request = self._analytics_service.reports().query(
            ids=f"channel=={channel_id}",
            startDate=start.isoformat(),
            endDate=end.isoformat(),
            **extra,
        )
        return self._execute(request, "/reports")

    def fetch_snapshot(self, run_date: date | None = None) -> dict[str, Any]:
        self._build_services()
        windows = compute_windows(run_date, lag_days=1)
        current = windows["current"]
        previous = windows["previous"]

        channel = self.parse_channel(
            self._execute(
                self._data_service.channels().list(part="id,snippet,statistics", mine=True),
                "/channels",
            )
        )
        channel_id = channel.pop("id")

        this_week = self.parse_report_row(
            self._report(channel_id, current.start, current.end, metrics=THIS_WEEK_METRICS)
        )
        last_week = self.parse_report_row(
            self._report(channel_id, previous.start, previous.end, metrics=LAST_WEEK_METRICS)
        )
        top_rows = self.parse_report_rows(
            self._report(
                channel_id,
                current.start,
                current.end,
                metrics=TOP_VIDEO_METRICS,
                dimensions="video",
                sort="-views",
                maxResults=self.top_videos,
            )
        )
        top_videos: list[dict[str, Any]] = []
        if top_rows:
            video_ids = ",".join(str(row.get("video", "")) for row in top_rows)
            videos_payload = self._execute(
                self._data_service.videos().list(part="snippet", id=video_ids),
                "/videos",
            )
            top_videos = self.join_video_titles(top_rows, videos_payload)

        traffic_rows = self.parse_report_rows(
            self._report(
                channel_id,
                current.start,
                current.end,
                metrics="views",
                dimensions="insightTrafficSourceType",
                sort="-views",
            )
        )
        return {
            "channel": channel,
            "thisWeek": {**current.as_dict(), **this_week},
            "lastWeek": {**previous.as_dict(), **last_week},
            "weekOverWeek": self.week_over_week(this_week, last_week),
            "topVideos": top_videos,
            "trafficSources": [
                {
                    "source": str(row.get("insightTrafficSourceType", "")),
                    "views": to_int(row.get("views")),
                }
                for row in traffic_rows
            ],
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
        }
