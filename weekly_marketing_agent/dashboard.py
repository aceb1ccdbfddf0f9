"""Static HTML rendering of the persisted weekly report.

Panels are built from ``rawData``; any source whose entry carries an ``error``
key is treated as unavailable and left off the page.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Mapping

from jinja2 import BaseLoader, Environment

from weekly_marketing_agent.errors import PersistenceError
from weekly_marketing_agent.models import SOURCE_NAMES, SOURCE_TITLES


ENV = Environment(
    loader=BaseLoader(),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)

PAGE_TEMPLATE = ENV.from_string(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Weekly Marketing Brief - {{ week_of }}</title>
<style>
body { font-family: Inter, system-ui, sans-serif; background: #f1f5f9; color: #0f172a; margin: 0; }
main { max-width: 1180px; margin: 0 auto; padding: 28px 32px; }
section { background: #fff; border-radius: 10px; padding: 20px 24px; margin-bottom: 20px; }
h1, h2 { font-family: Lora, Georgia, serif; }
.kpis { display: grid; grid-template-columns: repeat(4, 1fr); gap: 12px; margin-bottom: 16px; }
.kpi { background: #f8faff; border-radius: 8px; padding: 12px 14px; }
.kpi .value { font-size: 22px; font-weight: 800; }
.up { color: #16a34a; } .down { color: #dc2626; } .flat { color: #6b7280; }
.status-green { color: #16a34a; } .status-amber { color: #d97706; } .status-red { color: #dc2626; }
table { width: 100%; border-collapse: collapse; font-size: 13px; }
th, td { padding: 7px 10px; border-bottom: 1px solid #e5e9f0; text-align: left; }
footer { text-align: center; color: #9ca3af; font-size: 12px; padding: 16px 0; }
</style>
</head>
<body>
<main>
<header>
  <h1>Weekly Marketing Brief</h1>
  <p>Week of {{ week_of }} &middot; generated {{ generated_at }}</p>
</header>

<section id="verdict">
  <h2>Weekly verdict</h2>
  <p>{{ verdict }}</p>
</section>

{% if funnel %}
<section id="funnel">
  <h2>Funnel health</h2>
  <div class="kpis">
  {% for stage in funnel %}
    <div class="kpi">
      <strong>{{ stage.name|title }}</strong>
      <div class="value status-{{ stage.status }}">{{ stage.status|upper }}</div>
      <p>{{ stage.summary }}</p>
    </div>
  {% endfor %}
  </div>
</section>
{% endif %}

{% if urgent_actions %}
<section id="urgent-actions">
  <h2>Urgent actions</h2>
  <ol>
  {% for item in urgent_actions %}
    <li><strong>[{{ item.priority }}] {{ item.action }}</strong> ({{ item.doBy }})
      <p>{{ item.why }}</p>
      <p><em>How:</em> {{ item.howTo }}</p>
      <p><em>Expected:</em> {{ item.expectedOutcome }}</p>
    </li>
  {% endfor %}
  </ol>
</section>
{% endif %}

{% if do_not_touch or watch_next_week %}
<section id="guardrails">
  {% if do_not_touch %}
  <h2>Do not touch</h2>
  <ul>
  {% for item in do_not_touch %}
    <li><strong>{{ item.thing }}</strong>: {{ item.reason }} ({{ item.metric }})</li>
  {% endfor %}
  </ul>
  {% endif %}
  {% if watch_next_week %}
  <h2>Watch next week</h2>
  <ul>
  {% for item in watch_next_week %}
    <li><strong>{{ item.metric }}</strong>: {{ item.because }} Act at: {{ item.threshold }}</li>
  {% endfor %}
  </ul>
  {% endif %}
</section>
{% endif %}

{% if insights %}
<section id="insights">
  <h2>Insights</h2>
  {% for item in insights %}
  <article>
    <h3>{{ item.source }}: {{ item.observation }}</h3>
    <p>{{ item.meaning }}</p>
    <p><em>Hypothesis:</em> {{ item.hypothesis }}</p>
    <p><em>Recommendation:</em> {{ item.recommendation }}</p>
    <p>Confidence {{ item.confidence }} &middot; effort {{ item.effort }} &middot; impact {{ item.impact }}</p>
  </article>
  {% endfor %}
</section>
{% endif %}

{% for panel in panels %}
<section class="panel" data-panel="{{ panel.source }}" id="panel-{{ panel.source }}">
  <h2>{{ panel.title }}</h2>
  {% if panel.kpis %}
  <div class="kpis">
  {% for kpi in panel.kpis %}
    <div class="kpi">
      <div>{{ kpi.label }}</div>
      <div class="value">{{ kpi.value }}</div>
      {% if kpi.delta is not none %}
      <div class="{{ 'up' if kpi.delta > 0 else ('down' if kpi.delta < 0 else 'flat') }}">{{ '%+.1f'|format(kpi.delta) }}%</div>
      {% endif %}
    </div>
  {% endfor %}
  </div>
  {% endif %}
  {% if panel.rows %}
  <table>
    <thead><tr>{% for header in panel.headers %}<th>{{ header }}</th>{% endfor %}</tr></thead>
    <tbody>
    {% for row in panel.rows %}
      <tr>{% for cell in row %}<td>{{ cell }}</td>{% endfor %}</tr>
    {% endfor %}
    </tbody>
  </table>
  {% endif %}
</section>
{% endfor %}

{% if unavailable %}
<footer>Unavailable this week: {{ unavailable|join(", ") }}</footer>
{% endif %}
<footer>Weekly Marketing Brief &middot; auto-generated</footer>
</main>
</body>
</html>
"""
)


def _fmt(value: Any, suffix: str = "") -> str:
    if value is None or value == "":
        return "n/a"
    if isinstance(value, float):
        text = f"{value:,.1f}" if not value.is_integer() else f"{int(value):,}"
    elif isinstance(value, int):
        text = f"{value:,}"
    else:
        text = str(value)
    return f"{text}{suffix}"


def _kpi(label: str, value: Any, delta: Any = None, suffix: str = "") -> dict[str, Any]:
    return {
        "label": label,
        "value": _fmt(value, suffix),
        "delta": float(delta) if isinstance(delta, (int, float)) else None,
    }


def _ga4_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    this_week = (data.get("overview") or {}).get("this_week") or {}
    wow = data.get("weekOverWeek") or {}
    bounce = this_week.get("bounceRate")
    return {
        "kpis": [
            _kpi("Sessions", this_week.get("sessions"), wow.get("sessionsDelta")),
            _kpi("New users", this_week.get("newUsers"), wow.get("newUsersDelta")),
            _kpi("Engaged sessions", this_week.get("engagedSessions"), wow.get("engagementDelta")),
            _kpi(
                "Bounce rate",
                round(bounce * 100, 1) if isinstance(bounce, (int, float)) else None,
                wow.get("bounceRateDelta"),
                "%",
            ),
        ],
        "headers": ["Page", "Sessions", "Engaged", "Bounce rate"],
        "rows": [
            [
                page.get("path"),
                _fmt(page.get("sessions")),
                _fmt(page.get("engagedSessions")),
                _fmt(round((page.get("bounceRate") or 0) * 100, 1), "%"),
            ]
            for page in (data.get("topPages") or [])[:6]
        ],
    }


def _gsc_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    queries = data.get("topQueries") or []
    return {
        "kpis": [
            _kpi("Clicks (top queries)", sum(row.get("clicks", 0) for row in queries)),
            _kpi("Impressions (top queries)", sum(row.get("impressions", 0) for row in queries)),
            _kpi("Rising queries", len(data.get("risingQueries") or [])),
            _kpi("Opportunities", len(data.get("opportunities") or [])),
        ],
        "headers": ["Query", "Clicks", "Impressions", "CTR", "Position", "Change"],
        "rows": [
            [
                row.get("query"),
                _fmt(row.get("clicks")),
                _fmt(row.get("impressions")),
                _fmt(row.get("ctr"), "%"),
                _fmt(row.get("position")),
                _fmt(row.get("positionDelta")),
            ]
            for row in queries[:10]
        ],
    }


def _youtube_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    channel = data.get("channel") or {}
    this_week = data.get("thisWeek") or {}
    wow = data.get("weekOverWeek") or {}
    return {
        "kpis": [
            _kpi("Views", this_week.get("views"), wow.get("viewsDelta")),
            _kpi(
                "Watch minutes",
                this_week.get("estimatedMinutesWatched"),
                wow.get("watchTimeDelta"),
            ),
            _kpi("Net subscribers", wow.get("subscriberNetThis")),
            _kpi("Subscribers", channel.get("subscribers")),
        ],
        "headers": ["Video", "Views", "Watch minutes", "Avg viewed"],
        "rows": [
            [
                video.get("title"),
                _fmt(video.get("views")),
                _fmt(video.get("watchMinutes")),
                _fmt(video.get("avgViewPercentage"), "%"),
            ]
            for video in (data.get("topVideos") or [])[:5]
        ],
    }


def _meta_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    this_week = data.get("thisWeek") or {}
    wow = data.get("weekOverWeek") or {}
    flagged = {campaign.get("campaignName") for campaign in data.get("underperforming") or []}
    return {
        "kpis": [
            _kpi("Spend", this_week.get("spend"), wow.get("spendDelta")),
            _kpi("Leads", this_week.get("leads"), wow.get("leadsDelta")),
            _kpi("Cost per lead", this_week.get("costPerLead"), wow.get("costPerLeadDelta")),
            _kpi("CTR", this_week.get("ctr"), wow.get("ctrDelta"), "%"),
        ],
        "headers": ["Campaign", "Spend", "Leads", "CPL", "CTR", "Flag"],
        "rows": [
            [
                campaign.get("campaignName"),
                _fmt(campaign.get("spend")),
                _fmt(campaign.get("leads")),
                _fmt(campaign.get("costPerLead")),
                _fmt(campaign.get("ctr"), "%"),
                "underperforming" if campaign.get("campaignName") in flagged else "",
            ]
            for campaign in (data.get("campaigns") or [])[:8]
        ],
    }


def _kit_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    subscribers = data.get("subscribers") or {}
    averages = data.get("averages") or {}
    return {
        "kpis": [
            _kpi("Active subscribers", subscribers.get("active")),
            _kpi("New this week", subscribers.get("newThisWeek")),
            _kpi("Avg open rate", averages.get("openRate"), suffix="%"),
            _kpi("Avg click rate", averages.get("clickRate"), suffix="%"),
        ],
        "headers": ["Broadcast", "Recipients", "Open rate", "Click rate"],
        "rows": [
            [
                item.get("subject"),
                _fmt(item.get("recipientCount")),
                _fmt(item.get("openRate"), "%"),
                _fmt(item.get("clickRate"), "%"),
            ]
            for item in data.get("recentBroadcasts") or []
        ],
    }


def _unbounce_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    problems = {page.get("pageId") for page in data.get("problemPages") or []}
    return {
        "kpis": [
            _kpi("Avg conversion rate", data.get("averageConversionRate"), suffix="%"),
            _kpi("Problem pages", len(problems)),
            _kpi("Active A/B tests", len(data.get("activeABTests") or [])),
        ],
        "headers": ["Page", "Visitors", "Conversions", "Conv. rate", "Change", "Flag"],
        "rows": [
            [
                page.get("pageName"),
                _fmt((page.get("thisWeek") or {}).get("visitors")),
                _fmt((page.get("thisWeek") or {}).get("conversions")),
                _fmt((page.get("thisWeek") or {}).get("conversionRate"), "%"),
                _fmt(page.get("conversionDelta")),
                "problem" if page.get("pageId") in problems else "",
            ]
            for page in data.get("topPages") or []
        ],
    }


def _vimeo_panel(data: Mapping[str, Any]) -> dict[str, Any]:
    totals = data.get("totals") or {}
    low_finish = {video.get("id") for video in data.get("lowFinishRateVideos") or []}
    return {
        "kpis": [
            _kpi("Plays", totals.get("totalPlays")),
            _kpi("Watch minutes", totals.get("totalWatchMinutes")),
            _kpi("Avg finish rate", totals.get("avgFinishRate"), suffix="%"),
        ],
        "headers": ["Video", "Plays", "Play rate", "Finish rate", "Flag"],
        "rows": [
            [
                video.get("title"),
                _fmt((video.get("thisWeek") or {}).get("plays")),
                _fmt((video.get("thisWeek") or {}).get("playRate"), "%"),
                _fmt((video.get("thisWeek") or {}).get("finishRate"), "%"),
                "low finish rate" if video.get("id") in low_finish else "",
            ]
            for video in (data.get("topVideos") or data.get("videos") or [])[:5]
        ],
    }


PANEL_BUILDERS: dict[str, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
    "ga4": _ga4_panel,
    "gsc": _gsc_panel,
    "youtube": _youtube_panel,
    "meta": _meta_panel,
    "kit": _kit_panel,
    "unbounce": _unbounce_panel,
    "vimeo": _vimeo_panel,
}


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _items(value: Any) -> list[Mapping[str, Any]]:
    """Model-written list items; anything that is not an object is dropped."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def available_panels(artifact: Mapping[str, Any]) -> list[str]:
    raw = artifact.get("rawData") or {}
    return [
        source
        for source in SOURCE_NAMES
        if isinstance(raw.get(source), Mapping) and "error" not in raw[source]
    ]


def render_dashboard_html(artifact: Mapping[str, Any]) -> str:
    raw = artifact.get("rawData") or {}
    available = available_panels(artifact)
    panels = []
    for source in available:
        panel = PANEL_BUILDERS[source](raw[source])
        panel.update({"source": source, "title": SOURCE_TITLES[source]})
        panels.append(panel)

    funnel_health = _mapping(artifact.get("funnelHealth"))
    funnel = [
        {
            "name": stage,
            "status": str(funnel_health[stage].get("status", "")).lower(),
            "summary": funnel_health[stage].get("summary", ""),
        }
        for stage in ("awareness", "consideration", "conversion", "retention")
        if isinstance(funnel_health.get(stage), Mapping)
    ]
    return PAGE_TEMPLATE.render(
        week_of=artifact.get("weekOf", ""),
        generated_at=artifact.get("generatedAt", ""),
        verdict=artifact.get("weeklyVerdict", ""),
        funnel=funnel,
        urgent_actions=_items(artifact.get("urgentActions")),
        insights=_items(artifact.get("insights")),
        do_not_touch=_items(artifact.get("doNotTouch")),
        watch_next_week=_items(artifact.get("watchNextWeek")),
        panels=panels,
        unavailable=[SOURCE_TITLES[source] for source in SOURCE_NAMES if source not in available],
    )


def write_dashboard(artifact: Mapping[str, Any], output_path: str | Path) -> Path:
    target = Path(output_path)
    html = render_dashboard_html(artifact)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
        )
    except OSError as exc:
        raise PersistenceError(str(target), str(exc)) from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(html)
        os.replace(tmp_name, target)
    except OSError as exc:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(str(target), str(exc)) from exc
    return target
