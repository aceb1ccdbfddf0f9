from __future__ import annotations

import pytest

from weekly_marketing_agent.config import DEFAULT_BUSINESS_CONTEXT, AgentConfig
from weekly_marketing_agent.errors import WeeklyReportError
from weekly_marketing_agent.models import SOURCE_NAMES


def test_defaults_cover_all_sources(monkeypatch):
    monkeypatch.delenv("SOURCES", raising=False)
    monkeypatch.delenv("OUTPUT_PATH", raising=False)
    config = AgentConfig.from_env()
    assert config.enabled_sources == SOURCE_NAMES
    assert config.output_path == "dashboard/public/insights.json"
    assert config.meta_cpl_multiplier == 1.5
    assert config.unbounce_conversion_fraction == 0.5
    assert config.vimeo_finish_fraction == 0.7


def test_sources_subset_keeps_canonical_order(monkeypatch):
    monkeypatch.setenv("SOURCES", "vimeo, GA4,unknown")
    config = AgentConfig.from_env()
    assert config.enabled_sources == ("ga4", "vimeo")


def test_placeholder_value_is_treated_as_unset(monkeypatch):
    monkeypatch.setenv("KIT_API_SECRET", "KIT_API_SECRET=")
    config = AgentConfig.from_env()
    assert config.kit_api_secret == ""


def test_http_timeout_has_floor(monkeypatch):
    monkeypatch.setenv("HTTP_TIMEOUT_SEC", "1")
    config = AgentConfig.from_env()
    assert config.http_timeout_sec == 5


def test_llm_key_falls_back_to_openai_key(monkeypatch):
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("LLM_ENDPOINT", raising=False)
    config = AgentConfig.from_env()
    assert config.llm_api_key == "sk-test"
    assert config.azure_llm is False


def test_business_context_from_file(monkeypatch, tmp_path):
    context_file = tmp_path / "context.md"
    context_file.write_text("We sell widgets.\n", encoding="utf-8")
    monkeypatch.setenv("BUSINESS_CONTEXT_PATH", str(context_file))
    config = AgentConfig.from_env()
    assert config.business_context == "We sell widgets."


def test_business_context_default(monkeypatch):
    monkeypatch.delenv("BUSINESS_CONTEXT_PATH", raising=False)
    monkeypatch.delenv("BUSINESS_CONTEXT", raising=False)
    config = AgentConfig.from_env()
    assert config.business_context == DEFAULT_BUSINESS_CONTEXT


def test_missing_business_context_file_is_an_error(monkeypatch, tmp_path):
    monkeypatch.setenv("BUSINESS_CONTEXT_PATH", str(tmp_path / "missing.md"))
    with pytest.raises(WeeklyReportError):
        AgentConfig.from_env()

