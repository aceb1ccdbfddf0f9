from __future__ import annotations

import json

import pytest

import weekly_marketing_agent.main as main_module
from weekly_marketing_agent.errors import PersistenceError
from weekly_marketing_agent.models import SOURCE_NAMES


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    monkeypatch.setattr(main_module, "load_dotenv", lambda *args, **kwargs: False)
    for name in ("SOURCES", "BUSINESS_CONTEXT_PATH", "OUTPUT_PATH", "DASHBOARD_HTML_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_resolve_sources_keeps_canonical_order() -> None:
    assert main_module._resolve_sources(SOURCE_NAMES, ["vimeo", "ga4"], []) == ("ga4", "vimeo")
    assert main_module._resolve_sources(SOURCE_NAMES, [], ["kit", "meta"]) == (
        "ga4",
        "gsc",
        "youtube",
        "unbounce",
        "vimeo",
    )
    assert main_module._resolve_sources(("ga4", "gsc"), [], ["gsc"]) == ("ga4",)


def test_invalid_run_date_exits() -> None:
    with pytest.raises(SystemExit) as error:
        main_module.main(["--run-date", "17/06/2024"])
    assert "Invalid --run-date" in str(error.value)


def test_render_only_uses_existing_artifact(tmp_path, capsys) -> None:
    artifact_path = tmp_path / "insights.json"
    html_path = tmp_path / "index.html"
    artifact_path.write_text(
        json.dumps(
            {
                "weekOf": "2024-06-17",
                "weeklyVerdict": "Quiet week.",
                "rawData": {
                    "ga4": {"overview": {"this_week": {"sessions": 10.0}}},
                    "vimeo": {"error": "Analytics data requires Vimeo Pro or higher plan"},
                },
            }
        ),
        encoding="utf-8",
    )

    main_module.main(
        ["--render-only", "--output", str(artifact_path), "--dashboard-html", str(html_path)]
    )

    assert "panels=ga4" in capsys.readouterr().out
    html = html_path.read_text(encoding="utf-8")
    assert 'data-panel="ga4"' in html
    assert 'data-panel="vimeo"' not in html


def test_render_only_without_artifact_fails(tmp_path) -> None:
    with pytest.raises(SystemExit) as error:
        main_module.main(["--render-only", "--output", str(tmp_path / "missing.json")])
    assert str(error.value).startswith("Run failed: Report artifact not found")


def test_fetch_only_prints_snapshot_for_selected_sources(monkeypatch, capsys) -> None:
    requested: list[tuple[str, ...]] = []

    def fake_fetchers(config, run_date, names):
        requested.append(tuple(names))
        return {name: (lambda name=name: {"source": name}) for name in names}

    monkeypatch.setattr(main_module, "build_source_fetchers", fake_fetchers)

    main_module.main(["--fetch-only", "--source", "meta", "--source", "kit"])

    out = capsys.readouterr().out
    payload = json.loads(out[out.index("{"):])
    assert requested == [("kit", "meta")]
    assert list(payload) == list(SOURCE_NAMES)
    assert payload["meta"] == {"source": "meta"}
    assert payload["ga4"] == {"error": "Source disabled for this run."}


def test_run_failure_becomes_system_exit(monkeypatch) -> None:
    def failing_run(run_date, config):
        raise PersistenceError(config.output_path, "read-only file system")

    monkeypatch.setattr(main_module, "run_weekly_report", failing_run)

    with pytest.raises(SystemExit) as error:
        main_module.main(["--run-date", "2024-06-17", "--no-dashboard"])
    assert "Run failed: Failed to write" in str(error.value)
