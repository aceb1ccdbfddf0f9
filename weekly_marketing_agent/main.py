from __future__ import annotations

import argparse
import json
from dataclasses import replace
from datetime import date
from typing import Any, Sequence

from dotenv import find_dotenv, load_dotenv

from weekly_marketing_agent.aggregator import collect_sources
from weekly_marketing_agent.config import AgentConfig
from weekly_marketing_agent.dashboard import available_panels, write_dashboard
from weekly_marketing_agent.errors import WeeklyReportError
from weekly_marketing_agent.models import SOURCE_NAMES
from weekly_marketing_agent.report_writer import load_artifact
from weekly_marketing_agent.sources import build_source_fetchers
from weekly_marketing_agent.workflow import run_weekly_report


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Weekly Marketing Report Agent")
    parser.add_argument(
        "--run-date",
        default=None,
        help="Run date in YYYY-MM-DD format (default: today).",
    )
    parser.add_argument(
        "--source",
        action="append",
        choices=SOURCE_NAMES,
        default=[],
        help="Fetch only this source (can be repeated).",
    )
    parser.add_argument(
        "--skip-source",
        action="append",
        choices=SOURCE_NAMES,
        default=[],
        help="Skip this source for the run (can be repeated).",
    )
    parser.add_argument("--output", default=None, help="Path of the insights JSON artifact.")
    parser.add_argument("--dashboard-html", default=None, help="Path of the rendered dashboard.")
    parser.add_argument(
        "--no-dashboard",
        action="store_true",
        help="Do not render the HTML dashboard after writing the report.",
    )
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--fetch-only",
        action="store_true",
        help="Fetch sources and print the combined snapshot; no LLM call, nothing written.",
    )
    mode_group.add_argument(
        "--render-only",
        action="store_true",
        help="Render the dashboard from the existing report artifact.",
    )
    return parser.parse_args(argv)


def _parse_run_date(raw: str | None) -> date:
    if not raw:
        return date.today()
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise SystemExit(f"Invalid --run-date {raw!r}; expected YYYY-MM-DD.") from exc


def _resolve_sources(
    enabled: Sequence[str],
    include: Sequence[str],
    skip: Sequence[str],
) -> tuple[str, ...]:
    selected = set(include) if include else set(enabled)
    selected -= set(skip)
    return tuple(name for name in SOURCE_NAMES if name in selected)


def _apply_runtime_overrides(config: AgentConfig, args: argparse.Namespace) -> AgentConfig:
    overrides: dict[str, Any] = {
        "enabled_sources": _resolve_sources(
            config.enabled_sources, args.source or [], args.skip_source or []
        )
    }
    if args.output:
        overrides["output_path"] = args.output
    if args.dashboard_html:
        overrides["dashboard_html_path"] = args.dashboard_html
    if args.no_dashboard:
        overrides["dashboard_enabled"] = False
    return replace(config, **overrides)


def _print_digest(artifact: dict[str, Any]) -> None:
    print(f"Weekly verdict: {artifact.get('weeklyVerdict', '')}")
    print(f"Urgent actions: {len(artifact.get('urgentActions') or [])}")
    print(f"Insights: {len(artifact.get('insights') or [])}")
    print(f"Do not touch: {len(artifact.get('doNotTouch') or [])}")
    print(f"Watch next week: {len(artifact.get('watchNextWeek') or [])}")


def _render_only(config: AgentConfig) -> None:
    artifact = load_artifact(config.output_path)
    path = write_dashboard(artifact, config.dashboard_html_path)
    print(f"Dashboard rendered: {path} | panels={','.join(available_panels(artifact)) or 'none'}")


def _fetch_only(config: AgentConfig, run_date: date) -> None:
    fetchers = build_source_fetchers(config, run_date, config.enabled_sources)
    snapshot = collect_sources(fetchers)
    print(json.dumps(snapshot.as_dict(), indent=2, ensure_ascii=False, default=str))


def main(argv: Sequence[str] | None = None) -> None:
    try:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    except OSError as exc:
        print(f"Skipping .env: {exc}")

    args = _parse_args(argv)
    run_date = _parse_run_date(args.run_date)
    try:
        config = _apply_runtime_overrides(AgentConfig.from_env(), args)
    except (WeeklyReportError, ValueError) as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    try:
        if args.render_only:
            _render_only(config)
            return
        if args.fetch_only:
            _fetch_only(config, run_date)
            return

        print(f"Starting weekly marketing report: run_date={run_date.isoformat()}")
        final_state = run_weekly_report(run_date, config)
    except WeeklyReportError as exc:
        raise SystemExit(f"Run failed: {exc}") from exc

    snapshot = final_state["snapshot"]
    if snapshot.failed:
        print("Run finished with source-level failures:")
        for source, message in snapshot.failed.items():
            print(f"- {source}: {message}")
    _print_digest(final_state["artifact"])


if __name__ == "__main__":
    main()
