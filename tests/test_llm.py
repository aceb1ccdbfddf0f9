from __future__ import annotations

from dataclasses import replace

import pytest
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from weekly_marketing_agent.config import AgentConfig
from weekly_marketing_agent.errors import ConfigurationError
from weekly_marketing_agent.llm import build_narrative_llm


@pytest.fixture
def config(monkeypatch):
    monkeypatch.delenv("BUSINESS_CONTEXT_PATH", raising=False)
    return replace(
        AgentConfig.from_env(),
        llm_api_key="sk-test",
        llm_model="gpt-4.1",
        llm_endpoint="",
    )


def test_missing_key_or_model_names_the_env_var(config):
    with pytest.raises(ConfigurationError) as error:
        build_narrative_llm(replace(config, llm_api_key=""))
    assert "LLM_API_KEY" in str(error.value)
    with pytest.raises(ConfigurationError) as error:
        build_narrative_llm(replace(config, llm_model=""))
    assert "LLM_MODEL" in str(error.value)


def test_endpoint_selects_azure(config):
    assert isinstance(build_narrative_llm(config), ChatOpenAI)
    azure = build_narrative_llm(replace(config, llm_endpoint="https://example.openai.azure.com"))
    assert isinstance(azure, AzureChatOpenAI)
