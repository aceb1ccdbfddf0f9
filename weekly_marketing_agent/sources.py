from __future__ import annotations

from datetime import date
from typing import Any, Callable, Iterable

from weekly_marketing_agent.clients.ga4_client import GA4Client
from weekly_marketing_agent.clients.gsc_client import GSCClient
from weekly_marketing_agent.clients.kit_client import KitClient
from weekly_marketing_agent.clients.meta_ads_client import MetaAdsClient
from weekly_marketing_agent.clients.unbounce_client import UnbounceClient
from weekly_marketing_agent.clients.vimeo_client import VimeoClient
from weekly_marketing_agent.clients.youtube_client import YouTubeClient
from weekly_marketing_agent.config import AgentConfig
from weekly_marketing_agent.models import SOURCE_NAMES


SourceFetcher = Callable[[], dict[str, Any]]


def _ga4(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = GA4Client(
        config.ga4_property_id,
        service_account_json=config.google_service_account_json,
        service_account_path=config.google_service_account_path,
        top_pages=config.ga4_top_pages,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _gsc(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = GSCClient(
        config.gsc_site_url,
        service_account_json=config.google_service_account_json,
        service_account_path=config.google_service_account_path,
        data_lag_days=config.gsc_data_lag_days,
        query_row_limit=config.gsc_query_row_limit,
        page_row_limit=config.gsc_page_row_limit,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _youtube(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = YouTubeClient(
        oauth_client_id=config.youtube_oauth_client_id,
        oauth_client_secret=config.youtube_oauth_client_secret,
        oauth_refresh_token=config.youtube_oauth_refresh_token,
        oauth_token_uri=config.youtube_oauth_token_uri,
        service_account_json=config.google_service_account_json,
        service_account_path=config.google_service_account_path,
        top_videos=config.youtube_top_videos,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _kit(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = KitClient(
        config.kit_api_secret,
        broadcast_count=config.kit_broadcast_count,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _meta(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = MetaAdsClient(
        config.meta_ad_account_id,
        config.meta_access_token,
        api_version=config.meta_api_version,
        cpl_multiplier=config.meta_cpl_multiplier,
        min_ctr_pct=config.meta_min_ctr_pct,
        min_spend=config.meta_min_spend,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _unbounce(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = UnbounceClient(
        access_token=config.unbounce_access_token,
        client_id=config.unbounce_client_id,
        client_secret=config.unbounce_client_secret,
        refresh_token=config.unbounce_refresh_token,
        min_visitors=config.unbounce_min_visitors,
        conversion_fraction=config.unbounce_conversion_fraction,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


def _vimeo(config: AgentConfig, run_date: date) -> dict[str, Any]:
    client = VimeoClient(
        config.vimeo_access_token,
        max_videos=config.vimeo_max_videos,
        min_plays=config.vimeo_min_plays,
        finish_fraction=config.vimeo_finish_fraction,
        timeout_sec=config.http_timeout_sec,
    )
    return client.fetch_snapshot(run_date)


SOURCE_BUILDERS: dict[str, Callable[[AgentConfig, date], dict[str, Any]]] = {
    "ga4": _ga4,
    "gsc": _gsc,
    "youtube": _youtube,
    "kit": _kit,
    "meta": _meta,
    "unbounce": _unbounce,
    "vimeo": _vimeo,
}


def build_source_fetchers(
    config: AgentConfig,
    run_date: date,
    names: Iterable[str] | None = None,
) -> dict[str, SourceFetcher]:
    """Zero-argument fetchers for the requested sources, in canonical source order.

    Clients are constructed inside the fetcher so a missing credential fails only
    that source once the aggregator runs it.
    """
    requested = set(SOURCE_NAMES if names is None else names)
    fetchers: dict[str, SourceFetcher] = {}
    for name in SOURCE_NAMES:
        if name not in requested:
            continue
        builder = SOURCE_BUILDERS[name]
        fetchers[name] = lambda builder=builder: builder(config, run_date)
    return fetchers
