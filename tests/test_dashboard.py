from __future__ import annotations

import os

import pytest

from weekly_marketing_agent.dashboard import available_panels, render_dashboard_html, write_dashboard
from weekly_marketing_agent.errors import PersistenceError
from weekly_marketing_agent.models import SOURCE_NAMES


RAW_DATA = {
    "ga4": {
        "overview": {"this_week": {"sessions": 1200.0, "newUsers": 300.0, "bounceRate": 0.45}},
        "weekOverWeek": {"sessionsDelta": 20.0},
        "topPages": [{"path": "/pricing", "sessions": 300, "engagedSessions": 200, "bounceRate": 0.3}],
    },
    "gsc": {"topQueries": [{"query": "seo audit", "clicks": 50, "impressions": 1000, "ctr": 5.0,
                            "position": 3.2, "positionDelta": 3.3}]},
    "youtube": {"channel": {"subscribers": 5000}, "thisWeek": {"views": 1200}, "topVideos": []},
    "kit": {"subscribers": {"active": 1200}, "averages": {"openRate": 35.0},
            "recentBroadcasts": [{"subject": "Weekly tips", "openRate": 40.0}]},
    "meta": {"thisWeek": {"spend": 200.0, "leads": 10}, "campaigns": [{"campaignName": "Leads Q3"}]},
    "unbounce": {"averageConversionRate": 11.0, "topPages": [{"pageName": "Webinar"}]},
    "vimeo": {"totals": {"totalPlays": 150}, "videos": [{"title": "VSL A", "thisWeek": {"plays": 100}}]},
}


def _artifact(raw_data: dict) -> dict:
    return {
        "weekOf": "2024-06-17",
        "generatedAt": "2024-06-17T08:00:00.000Z",
        "weeklyVerdict": "Leads <b>cheaper</b> this week.",
        "funnelHealth": {"awareness": {"status": "green", "summary": "Views up."}},
        "urgentActions": [{"priority": "high", "action": "Pause ad set B", "doBy": "today"}],
        "insights": [{"source": "Meta", "observation": "CPL fell"}],
        "doNotTouch": [{"thing": "Webinar page", "reason": "Converting", "metric": "20%"}],
        "watchNextWeek": [{"metric": "CTR", "because": "Fatigue", "threshold": "< 0.8%"}],
        "rawData": raw_data,
    }


def test_all_sources_render_seven_panels() -> None:
    artifact = _artifact(RAW_DATA)
    html = render_dashboard_html(artifact)

    assert available_panels(artifact) == list(SOURCE_NAMES)
    assert html.count('data-panel="') == 7
    assert "Pause ad set B" in html
    assert "seo audit" in html
    assert "Leads Q3" in html


def test_failed_source_panel_is_omitted() -> None:
    raw_data = {**RAW_DATA, "kit": {"error": "Kit API error 401 on /broadcasts: unauthorized"}}
    artifact = _artifact(raw_data)
    html = render_dashboard_html(artifact)

    assert available_panels(artifact) == [name for name in SOURCE_NAMES if name != "kit"]
    assert html.count('data-panel="') == 6
    assert 'data-panel="kit"' not in html
    assert "Weekly tips" not in html


def test_model_text_is_escaped() -> None:
    html = render_dashboard_html(_artifact(RAW_DATA))
    assert "<b>cheaper</b>" not in html
    assert "&lt;b&gt;cheaper&lt;/b&gt;" in html


def test_write_dashboard_creates_parent_dirs(tmp_path) -> None:
    target = tmp_path / "public" / "index.html"
    write_dashboard(_artifact(RAW_DATA), target)
    assert target.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")


def test_malformed_model_fields_are_skipped() -> None:
    artifact = {
        **_artifact(RAW_DATA),
        "funnelHealth": {
            "awareness": "green",
            "conversion": {"status": "Red", "summary": "Landing page dipped."},
        },
        "urgentActions": ["Pause ad set B", {"priority": "high", "action": "Fix the form"}],
        "insights": "none this week",
        "watchNextWeek": None,
    }

    html = render_dashboard_html(artifact)

    assert 'class="value status-red"' in html
    assert "Landing page dipped." in html
    assert "Awareness" not in html
    assert "Fix the form" in html
    assert "Pause ad set B" not in html
    assert 'id="insights"' not in html
    assert html.count('data-panel="') == 7


def test_failed_write_leaves_no_temp_file(tmp_path, monkeypatch) -> None:
    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(PersistenceError) as error:
        write_dashboard(_artifact(RAW_DATA), tmp_path / "index.html")

    assert "read-only file system" in str(error.value)
    assert list(tmp_path.iterdir()) == []
