from __future__ import annotations

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from weekly_marketing_agent.config import AgentConfig
from weekly_marketing_agent.errors import ConfigurationError


def build_narrative_llm(config: AgentConfig) -> BaseChatModel:
    if not config.llm_api_key:
        raise ConfigurationError("LLM_API_KEY", source="narrative")
    if not config.llm_model:
        raise ConfigurationError("LLM_MODEL", source="narrative")

    common = {
        "temperature": config.llm_temperature,
        "max_tokens": max(200, int(config.llm_max_output_tokens)),
        "timeout": max(30, int(config.llm_timeout_sec)),
        "max_retries": max(0, int(config.llm_max_retries)),
    }
    if config.azure_llm:
        return AzureChatOpenAI(
            azure_endpoint=config.llm_endpoint,
            api_key=config.llm_api_key,
            openai_api_version=config.llm_api_version,
            azure_deployment=config.llm_model,
            **common,
        )
    return ChatOpenAI(model=config.llm_model, api_key=config.llm_api_key, **common)
