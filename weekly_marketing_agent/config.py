from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from weekly_marketing_agent.errors import WeeklyReportError
from weekly_marketing_agent.models import SOURCE_NAMES


DEFAULT_BUSINESS_CONTEXT = """
We sell marketing consulting, training, and done-for-you services to small
business owners and marketing consultants.

This quarter's primary goal: reduce cost-per-lead from Meta Ads while
maintaining or growing total lead volume. Secondary goal: grow the email list
by 500 new subscribers.

Key context: the YouTube channel drives top-of-funnel awareness. Video sales
letters on Vimeo sit on Unbounce landing pages and are the primary conversion
mechanism. Kit broadcasts are the main nurture tool. Meta Ads is the only paid
channel right now.
""".strip()


def _env(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default.strip()
    value = raw.strip()
    placeholder = f"{name}="
    unquoted = value.strip("'\"").strip()
    if unquoted.lower() == placeholder.lower():
        return default.strip()
    return value if value else default.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str = "") -> tuple[str, ...]:
    raw = _env(name, default)
    values = [part.strip() for part in raw.split(",") if part.strip()]
    return tuple(values)


def _normalize_sources(values: tuple[str, ...]) -> tuple[str, ...]:
    requested = {value.strip().lower() for value in values if value.strip()}
    if not requested or "all" in requested:
        return SOURCE_NAMES
    return tuple(name for name in SOURCE_NAMES if name in requested)


def _load_business_context() -> str:
    path_value = _env("BUSINESS_CONTEXT_PATH")
    if path_value:
        path = Path(path_value)
        if not path.exists():
            raise WeeklyReportError(f"Business context file not found: {path_value}")
        text = path.read_text(encoding="utf-8").strip()
        if text:
            return text
    return _env("BUSINESS_CONTEXT", DEFAULT_BUSINESS_CONTEXT)


@dataclass(frozen=True)
class AgentConfig:
    output_path: str
    dashboard_enabled: bool
    dashboard_html_path: str
    http_timeout_sec: int
    enabled_sources: tuple[str, ...]
    business_context: str

    google_service_account_json: str
    google_service_account_path: str

    ga4_property_id: str
    ga4_top_pages: int

    gsc_site_url: str
    gsc_data_lag_days: int
    gsc_query_row_limit: int
    gsc_page_row_limit: int

    youtube_oauth_client_id: str
    youtube_oauth_client_secret: str
    youtube_oauth_refresh_token: str
    youtube_oauth_token_uri: str
    youtube_top_videos: int

    meta_ad_account_id: str
    meta_access_token: str
    meta_api_version: str
    meta_cpl_multiplier: float
    meta_min_ctr_pct: float
    meta_min_spend: float

    kit_api_secret: str
    kit_broadcast_count: int

    unbounce_access_token: str
    unbounce_client_id: str
    unbounce_client_secret: str
    unbounce_refresh_token: str
    unbounce_min_visitors: int
    unbounce_conversion_fraction: float

    vimeo_access_token: str
    vimeo_max_videos: int
    vimeo_min_plays: int
    vimeo_finish_fraction: float

    llm_api_key: str
    llm_endpoint: str
    llm_api_version: str
    llm_model: str
    llm_temperature: float
    llm_timeout_sec: int
    llm_max_retries: int
    llm_max_output_tokens: int

    @classmethod
    def from_env(cls) -> "AgentConfig":
        return cls(
            output_path=_env("OUTPUT_PATH", "dashboard/public/insights.json"),
            dashboard_enabled=_env_bool("DASHBOARD_ENABLED", True),
            dashboard_html_path=_env("DASHBOARD_HTML_PATH", "dashboard/public/index.html"),
            http_timeout_sec=max(5, _env_int("HTTP_TIMEOUT_SEC", 30)),
            enabled_sources=_normalize_sources(_env_csv("SOURCES", "all")),
            business_context=_load_business_context(),
            google_service_account_json=_env("GOOGLE_SERVICE_ACCOUNT"),
            google_service_account_path=_env("GOOGLE_SERVICE_ACCOUNT_PATH"),
            ga4_property_id=_env("GA4_PROPERTY_ID"),
            ga4_top_pages=_env_int("GA4_TOP_PAGES", 10),
            gsc_site_url=_env("GSC_SITE_URL"),
            gsc_data_lag_days=max(0, _env_int("GSC_DATA_LAG_DAYS", 3)),
            gsc_query_row_limit=_env_int("GSC_QUERY_ROW_LIMIT", 50),
            gsc_page_row_limit=_env_int("GSC_PAGE_ROW_LIMIT", 25),
            youtube_oauth_client_id=_env("YOUTUBE_OAUTH_CLIENT_ID"),
            youtube_oauth_client_secret=_env("YOUTUBE_OAUTH_CLIENT_SECRET"),
            youtube_oauth_refresh_token=_env("YOUTUBE_OAUTH_REFRESH_TOKEN"),
            youtube_oauth_token_uri=_env(
                "YOUTUBE_OAUTH_TOKEN_URI", "https://oauth2.googleapis.com/token"
            ),
            youtube_top_videos=_env_int("YOUTUBE_TOP_VIDEOS", 10),
            meta_ad_account_id=_env("META_AD_ACCOUNT_ID"),
            meta_access_token=_env("META_ACCESS_TOKEN"),
            meta_api_version=_env("META_API_VERSION", "v19.0"),
            meta_cpl_multiplier=_env_float("META_CPL_MULTIPLIER", 1.5),
            meta_min_ctr_pct=_env_float("META_MIN_CTR_PCT", 0.5),
            meta_min_spend=_env_float("META_MIN_SPEND", 50.0),
            kit_api_secret=_env("KIT_API_SECRET"),
            kit_broadcast_count=_env_int("KIT_BROADCAST_COUNT", 8),
            unbounce_access_token=_env("UNBOUNCE_ACCESS_TOKEN"),
            unbounce_client_id=_env("UNBOUNCE_CLIENT_ID"),
            unbounce_client_secret=_env("UNBOUNCE_CLIENT_SECRET"),
            unbounce_refresh_token=_env("UNBOUNCE_REFRESH_TOKEN"),
            unbounce_min_visitors=_env_int("UNBOUNCE_MIN_VISITORS", 50),
            unbounce_conversion_fraction=_env_float("UNBOUNCE_CONVERSION_FRACTION", 0.5),
            vimeo_access_token=_env("VIMEO_ACCESS_TOKEN"),
            vimeo_max_videos=_env_int("VIMEO_MAX_VIDEOS", 15),
            vimeo_min_plays=_env_int("VIMEO_MIN_PLAYS", 10),
            vimeo_finish_fraction=_env_float("VIMEO_FINISH_FRACTION", 0.7),
            llm_api_key=_env("LLM_API_KEY") or _env("OPENAI_API_KEY"),
            llm_endpoint=_env("LLM_ENDPOINT"),
            llm_api_version=_env("LLM_API_VERSION", "2024-10-21"),
            llm_model=_env("LLM_MODEL", "gpt-4.1"),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.2),
            llm_timeout_sec=_env_int("LLM_TIMEOUT_SEC", 180),
            llm_max_retries=_env_int("LLM_MAX_RETRIES", 2),
            llm_max_output_tokens=_env_int("LLM_MAX_OUTPUT_TOKENS", 4096),
        )

    @property
    def azure_llm(self) -> bool:
        return bool(self.llm_endpoint)
